"""Referral engine exceptions.

These signal integrity violations that normal use should never produce.
Expected business outcomes (an unusable code, no credits to spend) are
returned as result objects instead.
"""


class ReferralError(Exception):
    """Base referral error carrying a machine-readable code."""

    error_code = "REFERRAL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidCodeError(ReferralError):
    """No account holds the referral code."""

    error_code = "INVALID_CODE"


class AlreadyReferredError(ReferralError):
    """The account is already the referred party of a referral."""

    error_code = "ALREADY_REFERRED"


class ReferralNotFoundError(ReferralError):
    """Referral does not exist."""

    error_code = "REFERRAL_NOT_FOUND"


class InvalidStatusError(ReferralError):
    """Status value is not one of the lifecycle states."""

    error_code = "INVALID_STATUS"


class InvalidTransitionError(ReferralError):
    """Status change would move a referral backwards or out of a closed state."""

    error_code = "INVALID_TRANSITION"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change referral status from {current} to {target}")


class CodeGenerationError(ReferralError):
    """No referral code could be claimed for the account."""

    error_code = "CODE_GENERATION_FAILED"
