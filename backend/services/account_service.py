"""Account Store: balances and status flags.

``credit`` and ``debit`` are the only ways a balance changes. Both are a single
conditional UPDATE executed inside the caller's transaction, so the check
("can afford this") and the write happen in one statement at the store and a
concurrent debit of the same row can never drive the balance negative.
"""
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import InsufficientBalance, NotFound
from db.models.account import Account, AccountStatus, AccountTier
from db.models.points_transaction import PointsTransaction
from db.models.reward import RewardRedemption
from db.models.task import Task
from db.session import get_or_use_session
from utils.db import safe_commit

logger = logging.getLogger(__name__)


def account_to_dict(account: Account) -> Dict[str, Any]:
    return {
        "id": account.id,
        "username": account.username,
        "points": int(account.points or 0),
        "tier": AccountTier(account.tier).value,
        "status": AccountStatus(account.status).value,
    }


async def _read_points(session: AsyncSession, account_id: str) -> Optional[int]:
    # Column select bypasses the identity map, so this is always the stored value
    result = await session.execute(select(Account.points).where(Account.id == account_id))
    return result.scalar_one_or_none()


async def _record(session: AsyncSession, account_id: str, amount: int, balance_after: int, reason: str, reference_id: Optional[str]):
    session.add(PointsTransaction(
        account_id=account_id,
        amount=amount,
        balance_after=balance_after,
        reason=reason,
        reference_id=str(reference_id) if reference_id is not None else None,
    ))


async def credit(session: AsyncSession, account_id: str, amount: int, reason: str, reference_id: Optional[str] = None) -> int:
    """Add ``amount`` points. Runs in the caller's transaction; returns the new balance."""
    if amount < 0:
        raise ValueError("credit amount must be non-negative")
    result = await session.execute(
        update(Account)
        .where(Account.id == account_id)
        .values(points=Account.points + amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFound("Account not found")
    balance = await _read_points(session, account_id)
    await _record(session, account_id, amount, balance, reason, reference_id)
    logger.info(f"Credited {amount} point(s) to {account_id} ({reason}); balance={balance}")
    return balance


async def debit(session: AsyncSession, account_id: str, amount: int, reason: str, reference_id: Optional[str] = None) -> int:
    """Remove ``amount`` points or raise ``InsufficientBalance`` leaving the row untouched."""
    if amount < 0:
        raise ValueError("debit amount must be non-negative")
    result = await session.execute(
        update(Account)
        .where(Account.id == account_id, Account.points >= amount)
        .values(points=Account.points - amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current = await _read_points(session, account_id)
        if current is None:
            raise NotFound("Account not found")
        raise InsufficientBalance(f"Insufficient points: balance {current}, required {amount}")
    balance = await _read_points(session, account_id)
    await _record(session, account_id, -amount, balance, reason, reference_id)
    logger.info(f"Debited {amount} point(s) from {account_id} ({reason}); balance={balance}")
    return balance


async def open_account(account_id: str, username: str = None, db: AsyncSession = None) -> Dict[str, Any]:
    """Registration hook for the auth service. Idempotent: an existing account is returned as is."""
    async with get_or_use_session(db) as session:
        existing = await session.get(Account, account_id)
        if existing:
            return account_to_dict(existing)
        account = Account(id=account_id, username=username, points=0, tier=AccountTier.FREE, status=AccountStatus.NORMAL)
        session.add(account)
        try:
            await session.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration of the same id
            await session.rollback()
            existing = await session.get(Account, account_id)
            if not existing:
                raise
            return account_to_dict(existing)
        logger.info(f"Opened account {account_id}")
        return account_to_dict(account)


async def get_account(account_id: str, db: AsyncSession = None) -> Dict[str, Any]:
    async with get_or_use_session(db) as session:
        result = await session.execute(
            select(Account).where(Account.id == account_id).execution_options(populate_existing=True)
        )
        account = result.scalars().first()
        if not account:
            raise NotFound("Account not found")
        return account_to_dict(account)


async def get_balance(account_id: str, db: AsyncSession = None) -> int:
    async with get_or_use_session(db) as session:
        points = await _read_points(session, account_id)
        if points is None:
            raise NotFound("Account not found")
        return int(points)


async def list_transactions(account_id: str, limit: int = 50, db: AsyncSession = None) -> List[Dict[str, Any]]:
    async with get_or_use_session(db) as session:
        result = await session.execute(
            select(PointsTransaction)
            .where(PointsTransaction.account_id == account_id)
            .order_by(PointsTransaction.id.desc())
            .limit(limit)
        )
        return [
            {
                "id": t.id,
                "amount": t.amount,
                "balance_after": t.balance_after,
                "reason": t.reason,
                "reference_id": t.reference_id,
                "created_at": t.created_at.isoformat() if t.created_at else None,
            }
            for t in result.scalars().all()
        ]


async def get_leaderboard(limit: int = None, db: AsyncSession = None) -> List[Dict[str, Any]]:
    limit = limit or settings.LEADERBOARD_SIZE
    async with get_or_use_session(db) as session:
        result = await session.execute(
            select(Account)
            .order_by(Account.points.desc(), Account.created_at.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [
            {**account_to_dict(account), "position": index + 1}
            for index, account in enumerate(result.scalars().all())
        ]


async def _set_flag(account_id: str, values: Dict[str, Any], db: AsyncSession = None) -> Dict[str, Any]:
    async with get_or_use_session(db) as session:
        result = await session.execute(
            update(Account).where(Account.id == account_id).values(**values).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await session.rollback()
            raise NotFound("Account not found")
        await safe_commit(session)
        logger.info(f"Updated account {account_id}: {values}")
    return await get_account(account_id, db)


async def set_account_status(account_id: str, status: AccountStatus, db: AsyncSession = None) -> Dict[str, Any]:
    return await _set_flag(account_id, {"status": AccountStatus(status)}, db)


async def set_account_tier(account_id: str, tier: AccountTier, db: AsyncSession = None) -> Dict[str, Any]:
    return await _set_flag(account_id, {"tier": AccountTier(tier)}, db)


async def get_system_stats(db: AsyncSession = None) -> Dict[str, int]:
    async with get_or_use_session(db) as session:
        total_accounts = (await session.execute(select(func.count()).select_from(Account))).scalar_one()
        total_tasks = (await session.execute(select(func.count()).select_from(Task))).scalar_one()
        total_redemptions = (await session.execute(select(func.count()).select_from(RewardRedemption))).scalar_one()
        total_points = (await session.execute(select(func.coalesce(func.sum(Account.points), 0)))).scalar_one()
        return {
            "total_accounts": int(total_accounts),
            "total_tasks": int(total_tasks),
            "total_redemptions": int(total_redemptions),
            "total_points": int(total_points),
        }
