"""Bearer-token authentication for the referral API."""

from referral_engine.auth.middleware import get_current_user, require_auth, require_owner
from referral_engine.auth.tokens import create_access_token, decode_access_token

__all__ = [
    "create_access_token",
    "decode_access_token",
    "get_current_user",
    "require_auth",
    "require_owner",
]
