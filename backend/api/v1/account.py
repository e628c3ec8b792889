from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from schemas.account_schema import CurrentUser
from api.dependencies import get_current_user
from db.session import get_db_session
from services.account_service import get_account, get_leaderboard, list_transactions
from utils.responses import no_store_json

router = APIRouter()

@router.get("/account")
async def read_account(current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await get_account(current_user.user_id, db))

@router.get("/account/transactions")
async def read_transactions(limit: int = 50, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await list_transactions(current_user.user_id, limit=min(max(limit, 1), 200), db=db))

@router.get("/leaderboard")
async def leaderboard(db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await get_leaderboard(db=db))
