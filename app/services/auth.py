from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt

from app.core import config

ACCESS_TOKEN_EXPIRE_MINUTES = 60


# =========================
# JWT HELPERS
# Sessions belong to the hosting platform; this service only verifies its tokens.
# =========================
def create_access_token(
    user_id: str,
    extra: Optional[Dict[str, Any]] = None,
    expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
) -> str:
    """Issue a token shaped like the platform's ("sub" must be a string)."""
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=expires_minutes)

    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if config.AUTH_JWT_AUDIENCE:
        payload["aud"] = config.AUTH_JWT_AUDIENCE
    if extra:
        payload.update(extra)

    return jwt.encode(payload, config.AUTH_JWT_SECRET, algorithm=config.AUTH_JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Return the JWT payload or raise ValueError when it is invalid or expired."""
    if not config.AUTH_JWT_SECRET:
        raise ValueError("AUTH_JWT_SECRET is not configured")
    try:
        return jwt.decode(
            token,
            config.AUTH_JWT_SECRET,
            algorithms=[config.AUTH_JWT_ALGORITHM],
            audience=config.AUTH_JWT_AUDIENCE or None,
            options={"verify_aud": bool(config.AUTH_JWT_AUDIENCE)},
        )
    except Exception as e:
        raise ValueError("Invalid or expired token") from e
