"""
security.py — Bearer token utilities.

Accounts live in the identity service; this API only verifies its HS256
JWTs (python-jose). Claims used:

  sub    user id (string) — the rating's submitter reference
  admin  optional bool — moderators may approve / reject any rating

Configuration is read from ratemap.core.config.settings so the secret
lives in environment variables / .env files, never in code.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from ratemap.core.config import settings


@dataclass(frozen=True)
class Identity:
    user_id: str
    is_admin: bool = False


def create_access_token(
    subject: str,
    is_admin: bool = False,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed JWT.

    Args:
        subject:       The user's string ID.
        is_admin:      Adds the `admin` claim for moderators.
        expires_delta: Custom TTL; defaults to settings.jwt_expiry_hours.
    """
    delta = expires_delta or timedelta(hours=settings.jwt_expiry_hours)
    expire = datetime.now(tz=timezone.utc) + delta
    payload = {"sub": subject, "exp": expire}
    if is_admin:
        payload["admin"] = True
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[Identity]:
    """
    Decode and validate a JWT.

    Returns the caller's Identity, or None if the token is missing,
    expired, or otherwise invalid.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None
    subject = payload.get("sub")
    if not subject:
        return None
    return Identity(user_id=subject, is_admin=bool(payload.get("admin", False)))
