import enum

from sqlalchemy import Column, String, Integer, DateTime, Enum, CheckConstraint, Index
from sqlalchemy.sql import func
from db.session import Base


class AccountTier(str, enum.Enum):
    FREE = "Free"
    PREMIUM = "Premium"


class AccountStatus(str, enum.Enum):
    NORMAL = "Normal"
    INFLUENCER = "Influencer"


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True)
    username = Column(String(255), unique=True, nullable=True)
    points = Column(Integer, default=0, nullable=False)
    tier = Column(Enum(AccountTier, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20), default=AccountTier.FREE, nullable=False)
    status = Column(Enum(AccountStatus, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20), default=AccountStatus.NORMAL, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_accounts_points_non_negative"),
        Index("ix_accounts_points", "points"),
    )
