"""Read-only referral rollups."""

from dataclasses import dataclass

from referral_engine.storage.repo import AccountRepository, ReferralRepository


@dataclass
class ReferralStats:
    """A referrer's history summary."""
    referral_code: str | None
    available_credits: int
    total_referrals: int
    pending: int
    qualified: int
    rewarded: int
    total_earned: int


class StatsAggregator:
    def __init__(self, accounts: AccountRepository, referrals: ReferralRepository):
        self.accounts = accounts
        self.referrals = referrals

    def stats(self, account_id: int) -> ReferralStats | None:
        """Counts by status and total earned, or None for an unknown account."""
        account = self.accounts.get_by_id(account_id)
        if not account:
            return None

        counts = self.referrals.stats_for_referrer(account_id)
        return ReferralStats(
            referral_code=account.referral_code,
            available_credits=account.referral_credits or 0,
            **counts,
        )

    def available_credits(self, account_id: int) -> int:
        """Current credit balance in cents (0 for an unknown account)."""
        account = self.accounts.get_by_id(account_id)
        return (account.referral_credits or 0) if account else 0
