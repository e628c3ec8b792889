from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from db.session import Base


class ReferralCode(Base):
    __tablename__ = "referral_codes"

    code = Column(String(32), primary_key=True)
    owner_id = Column(String(36), ForeignKey("accounts.id"), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ReferralApplication(Base):
    __tablename__ = "referral_applications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    referrer_id = Column(String(36), ForeignKey("accounts.id"), index=True, nullable=False)
    # one referral per person, ever
    referred_user_id = Column(String(36), ForeignKey("accounts.id"), unique=True, nullable=False)
    code_used = Column(String(32), nullable=False)
    points_awarded = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    __table_args__ = (
        Index("ix_referral_applications_referrer_created", "referrer_id", "created_at"),
    )
