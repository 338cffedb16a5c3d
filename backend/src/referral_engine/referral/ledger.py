"""Referral record lifecycle."""

from datetime import datetime

from sqlalchemy.exc import IntegrityError

from referral_engine.logging_config import get_logger
from referral_engine.referral.enums import ProgramType, ReferralStatus
from referral_engine.referral.exceptions import (
    AlreadyReferredError,
    InvalidCodeError,
    InvalidStatusError,
    InvalidTransitionError,
    ReferralNotFoundError,
)
from referral_engine.referral.programs import ProgramRewards
from referral_engine.referral.resolver import normalize_code
from referral_engine.referral.rewards import RewardApplier
from referral_engine.storage.models import Account, Referral, utcnow
from referral_engine.storage.repo import (
    AccountRepository,
    AppointmentRepository,
    ReferralRepository,
)

logger = get_logger(__name__)


class ReferralLedger:
    """Creates referrals and moves them through their lifecycle."""

    def __init__(
        self,
        accounts: AccountRepository,
        referrals: ReferralRepository,
        rewards: RewardApplier,
        appointments: AppointmentRepository | None = None,
    ):
        self.accounts = accounts
        self.referrals = referrals
        self.rewards = rewards
        self.appointments = appointments

    def create(
        self,
        code: str,
        referred_account: Account,
        program_type: ProgramType | str,
        rewards: ProgramRewards,
    ) -> Referral:
        """Record that an account signed up with a referral code.

        Args:
            code: Referral code used at signup
            referred_account: The newly signed-up account
            program_type: Program resolved by ProgramResolver.validate
            rewards: Reward terms to snapshot onto the referral

        Returns:
            The pending referral

        Raises:
            InvalidCodeError: If no account holds the code
            AlreadyReferredError: If the account was already referred
        """
        clean_code = normalize_code(code)
        referrer = self.accounts.get_by_code(clean_code)
        if not referrer:
            raise InvalidCodeError("Invalid referral code")

        if self.referrals.find_by_referred_id(referred_account.id):
            raise AlreadyReferredError("User has already been referred")

        program_type = ProgramType(program_type)
        try:
            referral = self.referrals.create(
                referrer_id=referrer.id,
                referred_id=referred_account.id,
                referral_code=clean_code,
                program_type=program_type.value,
                status=ReferralStatus.PENDING.value,
                cleanings_required=rewards.cleanings_required or 1,
                cleanings_completed=0,
                referrer_reward_amount=rewards.referrer_reward or 0,
                referred_reward_amount=rewards.referred_reward or 0,
                reward_type=rewards.reward_type.value,
                discount_percent=rewards.discount_percent,
                min_referrals=rewards.min_referrals,
            )
        except IntegrityError as e:
            # Lost a race with a concurrent signup for the same account
            raise AlreadyReferredError("User has already been referred") from e

        logger.info(
            "referral_created",
            referral_id=referral.id,
            referrer_id=referrer.id,
            referred_id=referred_account.id,
            program_type=program_type.value,
        )
        return referral

    def process_completion(self, appointment_id: int, referred_account_id: int) -> Referral | None:
        """Count a completed appointment towards the account's pending referral.

        Qualifies and pays out the referral once the required number of
        appointments has been completed.

        Returns:
            The updated referral, or None if the account has no pending referral
        """
        if self.appointments is not None:
            self.appointments.mark_completed(appointment_id)

        referral = self.referrals.find_pending_for_update(referred_account_id)
        if not referral:
            return None

        referral.cleanings_completed = (referral.cleanings_completed or 0) + 1
        logger.info(
            "referral_progress",
            referral_id=referral.id,
            appointment_id=appointment_id,
            completed=referral.cleanings_completed,
            required=referral.cleanings_required,
        )

        if referral.cleanings_completed >= referral.cleanings_required:
            referral.status = ReferralStatus.QUALIFIED.value
            referral.qualified_at = utcnow()
            logger.info("referral_qualified", referral_id=referral.id)
            self.rewards.apply(referral)

        self.referrals.session.flush()
        return referral

    def update_status(self, referral_id: int, new_status: str | ReferralStatus) -> Referral:
        """Administrative status override.

        Raises:
            ReferralNotFoundError: If the referral does not exist
            InvalidStatusError: If new_status is not a lifecycle state
            InvalidTransitionError: If the move would reopen or rewind the referral
        """
        referral = self.referrals.get_for_update(referral_id)
        if not referral:
            raise ReferralNotFoundError("Referral not found")

        try:
            target = ReferralStatus(new_status)
        except ValueError:
            raise InvalidStatusError(
                f"Invalid status. Must be one of: {', '.join(ReferralStatus.values())}"
            ) from None

        current = ReferralStatus(referral.status)
        if current is target:
            return referral
        if not current.can_transition_to(target):
            raise InvalidTransitionError(current.value, target.value)

        if target is ReferralStatus.QUALIFIED and not referral.qualified_at:
            referral.qualified_at = utcnow()

        if target is ReferralStatus.REWARDED:
            self.rewards.apply(referral)

        referral.status = target.value
        self.referrals.session.flush()

        logger.info(
            "referral_status_updated",
            referral_id=referral.id,
            previous=current.value,
            status=target.value,
        )
        return referral

    def list_referrals(
        self,
        status: str | None = None,
        program_type: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[Referral]:
        """Admin listing, newest first."""
        return self.referrals.list_filtered(
            status=status,
            program_type=program_type,
            start_date=start_date,
            end_date=end_date,
        )
