from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from schemas.account_schema import CurrentUser, AccountCreate, AccountStatusUpdate, AccountTierUpdate
from schemas.referral_schema import ReferralSettingsUpdate
from schemas.task_schema import ReviewRequest
from api.dependencies import admin_required
from config import config
from db.session import get_db_session
from services.account_service import open_account, set_account_status, set_account_tier, get_system_stats
from services.task_service import review_submission, list_pending_submissions
from utils.responses import no_store_json
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/admin/submissions/pending")
async def pending_submissions(current_user: CurrentUser = Depends(admin_required), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await list_pending_submissions(db))

@router.post("/admin/submissions/{submission_id}/review")
async def review(submission_id: int, request: ReviewRequest, current_user: CurrentUser = Depends(admin_required), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await review_submission(submission_id, request.decision.value, current_user.user_id, request.notes, db))

@router.post("/admin/accounts", status_code=201)
async def create_account(request: AccountCreate, current_user: CurrentUser = Depends(admin_required), db: AsyncSession = Depends(get_db_session)):
    # Idempotent: re-registering an existing id returns the stored account
    return no_store_json(await open_account(request.account_id, request.username, db), status_code=201)

@router.put("/admin/accounts/{account_id}/status")
async def update_status(account_id: str, request: AccountStatusUpdate, current_user: CurrentUser = Depends(admin_required), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await set_account_status(account_id, request.status, db))

@router.put("/admin/accounts/{account_id}/tier")
async def update_tier(account_id: str, request: AccountTierUpdate, current_user: CurrentUser = Depends(admin_required), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await set_account_tier(account_id, request.tier, db))

@router.get("/admin/stats")
async def stats(current_user: CurrentUser = Depends(admin_required), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await get_system_stats(db))

@router.get("/admin/referral-settings")
async def read_referral_settings(current_user: CurrentUser = Depends(admin_required)):
    return no_store_json(config.get_referral_config())

@router.put("/admin/referral-settings")
async def update_referral_settings(request: ReferralSettingsUpdate, current_user: CurrentUser = Depends(admin_required)):
    changes = request.model_dump(exclude_none=True)
    config.set_referral_settings(changes)
    logger.info(f"Referral settings updated by {current_user.user_id}: {changes}")
    return no_store_json(config.get_referral_config())
