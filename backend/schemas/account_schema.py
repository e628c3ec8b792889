from pydantic import BaseModel, Field
from typing import Optional
from db.models.account import AccountStatus, AccountTier

class CurrentUser(BaseModel):
    """Caller identity taken from the bearer token issued by the auth service"""
    user_id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

class AccountStatusUpdate(BaseModel):
    status: AccountStatus

class AccountCreate(BaseModel):
    """Sent by the auth service when a user registers"""
    account_id: str = Field(min_length=1, max_length=36)
    username: Optional[str] = Field(default=None, max_length=255)

class AccountTierUpdate(BaseModel):
    tier: AccountTier
