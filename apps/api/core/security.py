"""
Bearer tokens for the HTTP auth source (HS256, `sub` = user id).
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from core.config import settings

ALGORITHM = "HS256"
MIN_SECRET_LENGTH = 32

if len(settings.SECRET_KEY) < MIN_SECRET_LENGTH:
    raise ValueError(f"SECRET_KEY must be at least {MIN_SECRET_LENGTH} characters")


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    claims = dict(data)
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims["exp"] = datetime.now(timezone.utc) + lifetime
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Claims of a valid token; None for a bad signature, garbage or expiry."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def get_user_id_from_token(token: str) -> Optional[str]:
    claims = decode_access_token(token)
    if not claims:
        return None
    subject = claims.get("sub")
    return str(subject) if subject else None
