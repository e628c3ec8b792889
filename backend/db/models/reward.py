import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey, Index
from sqlalchemy.sql import func
from db.session import Base


class RedemptionStatus(str, enum.Enum):
    PENDING = "Pending"
    FULFILLED = "Fulfilled"
    CANCELLED = "Cancelled"


class Reward(Base):
    __tablename__ = "rewards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, default="")
    points_cost = Column(Integer, nullable=False)
    # NULL means unlimited stock
    quantity = Column(Integer, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    __table_args__ = (
        Index("ix_rewards_active_cost", "active", "points_cost"),
    )


class RewardRedemption(Base):
    __tablename__ = "reward_redemptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("accounts.id"), index=True, nullable=False)
    reward_id = Column(Integer, ForeignKey("rewards.id"), index=True, nullable=False)
    points_spent = Column(Integer, nullable=False)
    status = Column(
        Enum(RedemptionStatus, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        default=RedemptionStatus.PENDING,
        nullable=False,
    )
    redeemed_at = Column(DateTime(timezone=True), server_default=func.now())
