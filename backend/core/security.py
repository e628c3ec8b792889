from typing import Optional
from jose import JWTError, jwt
from fastapi.security import OAuth2PasswordBearer
from core.config import settings
import logging

logger = logging.getLogger(__name__)

# Tokens are minted by the external auth service; this API only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/login")

def verify_token(token: str) -> Optional[dict]:
    """Verify and decode JWT token"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        subject: str = payload.get("sub")
        if subject is None:
            return None
        return payload
    except JWTError as e:
        logger.warning(f"JWT decode failed: {e}")
        return None
