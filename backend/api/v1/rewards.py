from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from schemas.account_schema import CurrentUser
from api.dependencies import get_current_user
from db.session import get_db_session
from services.reward_service import redeem_reward, list_rewards, list_user_redemptions
from utils.responses import no_store_json

router = APIRouter()

@router.get("/rewards")
async def rewards(db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await list_rewards(db))

@router.get("/rewards/redemptions")
async def my_redemptions(current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await list_user_redemptions(current_user.user_id, db))

@router.post("/rewards/{reward_id}/redeem")
async def redeem(reward_id: int, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await redeem_reward(current_user.user_id, reward_id, db))
