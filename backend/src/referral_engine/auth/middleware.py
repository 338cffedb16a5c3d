"""Authentication dependencies for FastAPI."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from referral_engine.api.dependencies import get_referral_service
from referral_engine.auth.tokens import account_id_from_token
from referral_engine.logging_config import get_logger
from referral_engine.referral.service import ReferralService
from referral_engine.storage.models import Account

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    service: ReferralService = Depends(get_referral_service),
) -> Account | None:
    """Resolve the bearer token to an account.

    Returns:
        Account or None if no valid token was sent
    """
    if not credentials:
        return None

    account_id = account_id_from_token(credentials.credentials)
    if account_id is None:
        return None

    account = service.get_account(account_id)
    if account:
        request.state.user = account
    else:
        logger.debug("token_account_missing", account_id=account_id)
    return account


def require_auth(user: Account | None = Depends(get_current_user)) -> Account:
    """Require authentication - raises 401 if not authenticated.

    Raises:
        HTTPException: 401 if not authenticated
    """
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_owner(user: Account = Depends(require_auth)) -> Account:
    """Require the platform-owner role.

    Raises:
        HTTPException: 403 if the account is not an owner
    """
    if not user.is_owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Owner access required",
        )
    return user
