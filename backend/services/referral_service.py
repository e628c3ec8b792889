from db.session import get_or_use_session
from db.models.account import Account, AccountStatus
from db.models.referral import ReferralCode, ReferralApplication
from db.models.points_transaction import PointsTransaction, REASON_REFERRAL_BONUS, REASON_REFERRAL_SIGNUP
from config import config
from core.exceptions import AlreadyReferred, InvalidCode, NotFound, OperationFailed, SelfReferral
from services.account_service import credit
from sqlalchemy import select, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict, List, Optional
import logging
import secrets
import string
from utils.db import atomic
from utils.timing import timeit

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_referral_code(prefix: str = "ST", length: int = 8) -> str:
    """Prefix followed by ``length`` random uppercase alphanumerics"""
    return prefix + ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


async def _code_for_owner(session: AsyncSession, user_id: str) -> Optional[str]:
    result = await session.execute(select(ReferralCode.code).where(ReferralCode.owner_id == user_id))
    return result.scalar_one_or_none()


@timeit("create_referral_code")
async def create_referral_code(user_id: str, db: AsyncSession = None) -> Dict[str, Any]:
    """
    Return the user's referral code, creating it on first use.
    Safe to call repeatedly: an existing code is always returned instead of a new one.
    Uniqueness is the store's job (unique index on code and on owner); a
    collision just means another attempt with a fresh code.
    """
    async with get_or_use_session(db) as session:
        existing = await _code_for_owner(session, user_id)
        if existing:
            return {"code": existing, "created": False}
        if await session.get(Account, user_id) is None:
            raise NotFound("Account not found")

        code_settings = config.get_referral_code_settings()
        for attempt in range(1, code_settings["max_attempts"] + 1):
            code = generate_referral_code(code_settings["prefix"], code_settings["length"])
            session.add(ReferralCode(code=code, owner_id=user_id))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                existing = await _code_for_owner(session, user_id)
                if existing:
                    # A concurrent call created this user's code first
                    return {"code": existing, "created": False}
                logger.warning(f"Referral code collision on attempt {attempt} for user {user_id}; regenerating")
                continue
            logger.info(f"Created referral code {code} for user {user_id}")
            return {"code": code, "created": True}

        logger.error(f"Exhausted {code_settings['max_attempts']} attempts generating a referral code for {user_id}")
        raise OperationFailed("Failed to generate unique referral code")


@timeit("apply_referral_code")
async def apply_referral_code(user_id: str, code: str, db: AsyncSession = None) -> Dict[str, Any]:
    """
    Record that ``user_id`` was referred via ``code`` and pay both sides.
    The application row and both credits commit together; a user can be
    referred at most once, enforced by the unique index on referred_user_id.
    """
    normalized = normalize_code(code)
    if not normalized:
        raise InvalidCode("Referral code is required")

    async with get_or_use_session(db) as session:
        async with atomic(session, "apply_referral_code"):
            referral = await session.get(ReferralCode, normalized)
            if not referral:
                raise InvalidCode()
            if referral.owner_id == user_id:
                raise SelfReferral()
            if await session.get(Account, user_id) is None:
                raise NotFound("Account not found")

            already = await session.execute(
                select(ReferralApplication.id).where(ReferralApplication.referred_user_id == user_id)
            )
            if already.scalar_one_or_none() is not None:
                raise AlreadyReferred()

            referrer_status = (await session.execute(
                select(Account.status).where(Account.id == referral.owner_id)
            )).scalar_one_or_none()
            if referrer_status is None:
                raise InvalidCode()

            # Read at call time so admin changes apply to the next referral
            base_bonus = config.get_referral_bonus()
            referrer_bonus = base_bonus
            if AccountStatus(referrer_status) == AccountStatus.INFLUENCER:
                referrer_bonus = base_bonus * config.get_influencer_multiplier()

            application = ReferralApplication(
                referrer_id=referral.owner_id,
                referred_user_id=user_id,
                code_used=normalized,
                points_awarded=True,
            )
            session.add(application)
            try:
                await session.flush()
            except IntegrityError:
                raise AlreadyReferred()

            await credit(session, referral.owner_id, referrer_bonus, REASON_REFERRAL_BONUS, application.id)
            total_points = await credit(session, user_id, base_bonus, REASON_REFERRAL_SIGNUP, application.id)
            logger.info(
                f"User {user_id} applied code {normalized}: referrer {referral.owner_id} +{referrer_bonus}, referred +{base_bonus}"
            )
        return {
            "success": True,
            "message": f"Referral code applied successfully! You've earned {base_bonus} points.",
            "points_earned": base_bonus,
            "total_points": total_points,
        }


async def get_referral_stats(user_id: str, db: AsyncSession = None) -> Dict[str, Any]:
    async with get_or_use_session(db) as session:
        counts = (await session.execute(
            select(
                func.count(ReferralApplication.id),
                func.coalesce(func.sum(case((ReferralApplication.points_awarded.is_(True), 1), else_=0)), 0),
            ).where(ReferralApplication.referrer_id == user_id)
        )).one()
        total_referrals = int(counts[0] or 0)
        awarded = int(counts[1] or 0)
        points_earned = (await session.execute(
            select(func.coalesce(func.sum(PointsTransaction.amount), 0)).where(
                PointsTransaction.account_id == user_id,
                PointsTransaction.reason == REASON_REFERRAL_BONUS,
            )
        )).scalar_one()
        return {
            "code": await _code_for_owner(session, user_id),
            "total_referrals": total_referrals,
            "points_earned": int(points_earned or 0),
            "pending_referrals": total_referrals - awarded,
        }


async def list_referred_users(user_id: str, db: AsyncSession = None) -> List[Dict[str, Any]]:
    async with get_or_use_session(db) as session:
        result = await session.execute(
            select(ReferralApplication, Account.username)
            .join(Account, Account.id == ReferralApplication.referred_user_id)
            .where(ReferralApplication.referrer_id == user_id)
            .order_by(ReferralApplication.id.desc())
        )
        return [
            {
                "id": application.id,
                "referred_user_id": application.referred_user_id,
                "username": username,
                "code_used": application.code_used,
                "points_awarded": bool(application.points_awarded),
                "created_at": application.created_at.isoformat() if application.created_at else None,
            }
            for application, username in result.all()
        ]
