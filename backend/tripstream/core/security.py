# backend/tripstream/core/security.py

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional

from tripstream.core.config_loader import settings


ALGORITHM = "HS256"


# ---------------------------------------------------------------------------
# JWT CREATION
# ---------------------------------------------------------------------------
def create_access_token(subject: str, expires_minutes: Optional[int] = None) -> str:
    """
    Default expiration = settings.access_token_expire_minutes (1 day)
    """
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes or settings.access_token_expire_minutes)

    payload = {
        "sub": subject,
        "exp": expire,
        "iat": now,
    }

    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=ALGORITHM)


# ---------------------------------------------------------------------------
# JWT VERIFY
# ---------------------------------------------------------------------------
def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None


# ---------------------------------------------------------------------------
# SESSION FROM HEADER
# ---------------------------------------------------------------------------
def user_id_from_header(authorization: Optional[str]) -> Optional[str]:
    """Return the ``sub`` of a valid ``Bearer`` token, or None when there is no session."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    payload = decode_token(authorization.split(" ", 1)[1])
    if not payload:
        return None
    return payload.get("sub")
