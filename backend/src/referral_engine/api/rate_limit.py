"""Rate limiting for the referral API."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from referral_engine.auth.tokens import account_id_from_token
from referral_engine.settings import settings


def rate_limit_key(request: Request) -> str:
    """Bucket authenticated callers by account, everyone else by address."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        account_id = account_id_from_token(token)
        if account_id is not None:
            return f"account:{account_id}"
    return get_remote_address(request)


# Enforced in production only
limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[settings.default_rate_limit],
    storage_uri="memory://",
    enabled=settings.env == "production",
)
