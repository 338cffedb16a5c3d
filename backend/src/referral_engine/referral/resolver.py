"""Referral code validation and program resolution."""

import re
from dataclasses import dataclass
from typing import Any

from referral_engine.logging_config import get_logger
from referral_engine.referral.enums import AccountType, ProgramType
from referral_engine.referral.programs import ProgramRewards, resolve_program, rewards_for
from referral_engine.storage.repo import (
    AccountRepository,
    ProgramConfigRepository,
    ReferralRepository,
)

logger = get_logger(__name__)

CODE_PATTERN = re.compile(r"^[A-Z0-9]{4,12}$")


@dataclass
class ValidationResult:
    """Outcome of validating a referral code."""
    valid: bool
    referrer: dict[str, Any] | None = None
    program_type: ProgramType | None = None
    rewards: ProgramRewards | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def failure(cls, error_code: str, error: str) -> "ValidationResult":
        return cls(valid=False, error=error, error_code=error_code)


def normalize_code(code: str) -> str:
    return code.strip().upper()


class ProgramResolver:
    """Decides whether a code can be used and under which program.

    Every outcome is returned as a ValidationResult; only store failures
    raise.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        configs: ProgramConfigRepository,
        referrals: ReferralRepository,
    ):
        self.accounts = accounts
        self.configs = configs
        self.referrals = referrals

    def validate(
        self,
        code: str | None,
        referred_account_type: str | AccountType | None = AccountType.HOMEOWNER,
    ) -> ValidationResult:
        """Validate a referral code for a prospective referred account.

        Args:
            code: Code as typed by the user
            referred_account_type: Type of the account being referred

        Returns:
            ValidationResult with the referrer, program and reward terms on success
        """
        if not code:
            return ValidationResult.failure("NO_CODE", "No referral code provided")

        clean_code = normalize_code(code)
        if not CODE_PATTERN.match(clean_code):
            return ValidationResult.failure(
                "INVALID_FORMAT",
                "Invalid code format. Referral codes contain only letters and numbers.",
            )

        referrer = self.accounts.get_by_code(clean_code)
        if not referrer:
            return ValidationResult.failure(
                "CODE_NOT_FOUND",
                "This referral code doesn't exist. Please check the code and try again.",
            )

        if referrer.account_frozen:
            return ValidationResult.failure(
                "ACCOUNT_FROZEN",
                "This referral code is no longer active. "
                "The account associated with it has been suspended.",
            )

        config = self.configs.get_active()
        if not config:
            return ValidationResult.failure(
                "PROGRAM_INACTIVE",
                "The referral program is not currently active. Please try again later.",
            )

        referrer_type = AccountType.of(referrer)
        referred_type = AccountType.parse(referred_account_type)
        if referred_type is None:
            return ValidationResult.failure(
                "INVALID_COMBINATION",
                "This referral code cannot be used for your account type.",
            )

        program_type = resolve_program(referrer_type, referred_type)
        rewards = rewards_for(config, program_type)

        if not rewards.enabled:
            return ValidationResult.failure(
                "PROGRAM_TYPE_DISABLED",
                f"The {program_type.label} is not currently active.",
            )

        if rewards.max_per_month is not None and rewards.max_per_month > 0:
            monthly_count = self.referrals.count_monthly(referrer.id, program_type.value)
            if monthly_count >= rewards.max_per_month:
                logger.info(
                    "referral_monthly_limit_reached",
                    referrer_id=referrer.id,
                    program_type=program_type.value,
                    count=monthly_count,
                )
                return ValidationResult.failure(
                    "MONTHLY_LIMIT_REACHED",
                    "This referrer has reached their maximum referrals for this month. "
                    "Please try again next month or use a different code.",
                )

        return ValidationResult(
            valid=True,
            referrer={
                "id": referrer.id,
                "first_name": referrer.first_name,
                "type": referrer_type.value,
            },
            program_type=program_type,
            rewards=rewards,
        )
