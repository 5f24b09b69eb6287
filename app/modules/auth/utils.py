from datetime import datetime, timedelta, timezone
from typing import Optional
import jwt
from app.core.config import settings


def create_access_token(username: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token for an operator.
    Used by development tooling and tests; production tokens come from the identity service.
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {"sub": username, "role": role, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.APP_SECRET_STRING, algorithm=settings.ALGORITHM)
