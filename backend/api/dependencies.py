from fastapi import Depends, HTTPException, status
from core.security import oauth2_scheme, verify_token
from schemas.account_schema import CurrentUser
import logging

logger = logging.getLogger(__name__)

async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    # Identity comes from the auth service's token; balances are always read from the store
    payload = verify_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return CurrentUser(user_id=str(payload.get("sub")), role=payload.get("role") or "user")

async def admin_required(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not current_user.is_admin:
        logger.warning(f"Non-admin {current_user.user_id} attempted an admin operation")
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user
