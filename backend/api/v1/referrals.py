from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from schemas.account_schema import CurrentUser
from schemas.referral_schema import ApplyReferralCode
from api.dependencies import get_current_user
from db.session import get_db_session
from services.referral_service import create_referral_code, apply_referral_code, get_referral_stats, list_referred_users
from utils.responses import no_store_json

router = APIRouter()

@router.post("/referrals/code")
async def referral_code(current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await create_referral_code(current_user.user_id, db))

@router.post("/referrals/apply")
async def apply_code(body: ApplyReferralCode, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await apply_referral_code(current_user.user_id, body.referral_code, db))

@router.get("/referrals/stats")
async def referral_stats(current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await get_referral_stats(current_user.user_id, db))

@router.get("/referrals/referred")
async def referred_users(current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await list_referred_users(current_user.user_id, db))
