"""Referral programs for the cleaning marketplace.

Four programs keyed by who refers whom:
- Homeowner refers homeowner: both sides get account credit
- Homeowner refers cleaner: referrer gets credit once the cleaner has worked
- Cleaner refers cleaner: referrer gets a bonus
- Cleaner refers homeowner: referrer earns a discount

The service and its components live in their own modules and are imported
from there, since they depend on the storage layer.
"""

from referral_engine.referral.enums import AccountType, ProgramType, ReferralStatus, RewardType
from referral_engine.referral.exceptions import (
    AlreadyReferredError,
    CodeGenerationError,
    InvalidCodeError,
    InvalidStatusError,
    InvalidTransitionError,
    ReferralError,
    ReferralNotFoundError,
)

__all__ = [
    "AccountType",
    "ProgramType",
    "ReferralStatus",
    "RewardType",
    "ReferralError",
    "InvalidCodeError",
    "AlreadyReferredError",
    "ReferralNotFoundError",
    "InvalidStatusError",
    "InvalidTransitionError",
    "CodeGenerationError",
]
