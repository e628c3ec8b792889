from pydantic import BaseModel, Field
from typing import Optional

class ApplyReferralCode(BaseModel):
    referral_code: str = Field(min_length=1, max_length=32)

class ReferralSettingsUpdate(BaseModel):
    base_bonus: Optional[int] = Field(default=None, ge=0)
    influencer_multiplier: Optional[int] = Field(default=None, ge=1)
