"""JWT access tokens.

Tokens are issued by the platform's account service; the engine only needs
to read the account id from ``sub``. ``create_access_token`` backs the CLI
``token`` command and the tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from referral_engine.logging_config import get_logger
from referral_engine.settings import settings

logger = get_logger(__name__)

JWT_EXPIRE_HOURS = 2


def create_access_token(account_id: int, expires_delta: timedelta | None = None) -> str:
    """Create a signed token for an account.

    Args:
        account_id: Account the token identifies
        expires_delta: Lifetime (defaults to JWT_EXPIRE_HOURS)

    Returns:
        JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(hours=JWT_EXPIRE_HOURS)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(account_id),
        "exp": now + expires_delta,
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Verify and decode a token.

    Returns:
        Token payload or None if invalid or expired
    """
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.debug("token_verification_failed", error=str(e))
        return None


def account_id_from_token(token: str) -> int | None:
    payload = decode_access_token(token)
    if not payload:
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
