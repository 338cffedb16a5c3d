"""Reward payout for qualified referrals."""

from referral_engine.logging_config import get_logger
from referral_engine.referral.enums import ReferralStatus
from referral_engine.referral.programs import format_dollars
from referral_engine.storage.models import Referral, utcnow
from referral_engine.storage.repo import AccountRepository

logger = get_logger(__name__)

REWARD_OPERATION = "referral_reward"


class RewardApplier:
    """Credits the referrer and referred party of a referral, once each."""

    def __init__(self, accounts: AccountRepository):
        self.accounts = accounts

    def apply(self, referral: Referral) -> Referral:
        """Apply outstanding rewards and mark the referral rewarded.

        Each side is credited only while its applied flag is false, so
        calling this again credits nothing. All writes share one savepoint.

        Args:
            referral: Referral to pay out (locked by the caller)

        Returns:
            The updated referral
        """
        savepoint = self.accounts.savepoint()
        try:
            self._apply_side(
                referral,
                account_id=referral.referrer_id,
                amount=referral.referrer_reward_amount or 0,
                side="referrer",
                description=f"Referral reward for referring a new {referral.program_type} member",
            )
            self._apply_side(
                referral,
                account_id=referral.referred_id,
                amount=referral.referred_reward_amount or 0,
                side="referred",
                description="Welcome reward for signing up with a referral code",
            )
            referral.status = ReferralStatus.REWARDED.value
        except Exception:
            savepoint.rollback()
            raise
        savepoint.commit()

        logger.info(
            "referral_rewarded",
            referral_id=referral.id,
            referrer_applied=referral.referrer_reward_applied,
            referred_applied=referral.referred_reward_applied,
        )
        return referral

    def _apply_side(
        self,
        referral: Referral,
        account_id: int,
        amount: int,
        side: str,
        description: str,
    ) -> None:
        if getattr(referral, f"{side}_reward_applied"):
            return

        if amount > 0:
            account = self.accounts.get_for_update(account_id)
            if not account:
                logger.warning(
                    "reward_account_missing",
                    referral_id=referral.id,
                    side=side,
                    account_id=account_id,
                )
                return
            self.accounts.add_credits(
                account,
                amount,
                operation=REWARD_OPERATION,
                referral_id=referral.id,
                description=description,
            )
            logger.info(
                "reward_applied",
                referral_id=referral.id,
                side=side,
                account_id=account_id,
                amount=amount,
                amount_display=format_dollars(amount),
            )

        setattr(referral, f"{side}_reward_applied", True)
        setattr(referral, f"{side}_reward_applied_at", utcnow())
