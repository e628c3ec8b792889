from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from db.session import Base

REASON_TASK_COMPLETION = "task_completion"
REASON_REWARD_REDEMPTION = "reward_redemption"
REASON_REFERRAL_BONUS = "referral_bonus"
REASON_REFERRAL_SIGNUP = "referral_signup"


class PointsTransaction(Base):
    """Append-only ledger row written next to every balance change."""
    __tablename__ = "points_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    amount = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    reason = Column(String(50), nullable=False)
    reference_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    __table_args__ = (
        Index("ix_points_transactions_account_created", "account_id", "created_at"),
    )
