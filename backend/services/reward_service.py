from typing import Any, Dict, List
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import InsufficientBalance, NotFound, OutOfStock, RewardInactive
from db.models.account import Account
from db.models.points_transaction import REASON_REWARD_REDEMPTION
from db.models.reward import RedemptionStatus, Reward, RewardRedemption
from db.session import get_or_use_session
from services.account_service import debit
from utils.db import atomic
from utils.timing import timeit

logger = logging.getLogger(__name__)


def reward_to_dict(reward: Reward) -> Dict[str, Any]:
    return {
        "id": reward.id,
        "name": reward.name,
        "points_cost": reward.points_cost,
        "quantity": reward.quantity,
        "active": bool(reward.active),
    }


def redemption_to_dict(redemption: RewardRedemption) -> Dict[str, Any]:
    return {
        "id": redemption.id,
        "user_id": redemption.user_id,
        "reward_id": redemption.reward_id,
        "points_spent": redemption.points_spent,
        "status": RedemptionStatus(redemption.status).value,
        "redeemed_at": redemption.redeemed_at.isoformat() if redemption.redeemed_at else None,
    }


@timeit("redeem_reward")
async def redeem_reward(user_id: str, reward_id: int, db: AsyncSession = None) -> Dict[str, Any]:
    """Spend points on a reward.

    The up-front checks give precise errors for the common case; the
    conditional UPDATEs on stock and balance are what actually guarantee that
    two racing redeemers can't both take the last unit or overdraw a balance.
    """
    async with get_or_use_session(db) as session:
        async with atomic(session, "redeem_reward"):
            reward = await session.get(Reward, reward_id, populate_existing=True)
            if not reward:
                raise NotFound("Reward not found")
            if not reward.active:
                raise RewardInactive()
            if reward.quantity is not None and reward.quantity <= 0:
                raise OutOfStock()

            balance = (await session.execute(select(Account.points).where(Account.id == user_id))).scalar_one_or_none()
            if balance is None:
                raise NotFound("Account not found")
            cost = int(reward.points_cost)
            if balance < cost:
                raise InsufficientBalance(f"Insufficient points: balance {balance}, required {cost}")

            if reward.quantity is not None:
                result = await session.execute(
                    update(Reward)
                    .where(Reward.id == reward_id, Reward.quantity.is_not(None), Reward.quantity > 0, Reward.active.is_(True))
                    .values(quantity=Reward.quantity - 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise OutOfStock()

            redemption = RewardRedemption(
                user_id=user_id,
                reward_id=reward_id,
                points_spent=cost,
                status=RedemptionStatus.PENDING,
            )
            session.add(redemption)
            await session.flush()
            remaining = await debit(session, user_id, cost, REASON_REWARD_REDEMPTION, redemption.id)
            logger.info(f"User {user_id} redeemed reward {reward_id} for {cost} point(s)")
        return {
            "success": True,
            "redemption_id": redemption.id,
            "reward_id": reward_id,
            "points_spent": cost,
            "remaining_balance": remaining,
        }


async def list_rewards(db: AsyncSession = None) -> List[Dict[str, Any]]:
    async with get_or_use_session(db) as session:
        result = await session.execute(
            select(Reward)
            .where(Reward.active.is_(True))
            .order_by(Reward.points_cost.asc(), Reward.id.asc())
            .execution_options(populate_existing=True)
        )
        return [reward_to_dict(r) for r in result.scalars().all()]


async def list_user_redemptions(user_id: str, db: AsyncSession = None) -> List[Dict[str, Any]]:
    async with get_or_use_session(db) as session:
        result = await session.execute(
            select(RewardRedemption, Reward)
            .join(Reward, Reward.id == RewardRedemption.reward_id)
            .where(RewardRedemption.user_id == user_id)
            .order_by(RewardRedemption.id.desc())
        )
        return [
            {**redemption_to_dict(redemption), "reward": reward_to_dict(reward)}
            for redemption, reward in result.all()
        ]
