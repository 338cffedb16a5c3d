"""Enumerations for the referral programs."""

from enum import Enum


class AccountType(str, Enum):
    """Referral-relevant account type. A missing type means homeowner."""
    HOMEOWNER = "homeowner"
    CLEANER = "cleaner"

    @classmethod
    def parse(cls, value: "str | AccountType | None") -> "AccountType | None":
        """Resolve a raw type value, or None if it names no known type."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.HOMEOWNER
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @classmethod
    def of(cls, account) -> "AccountType":
        """Type of a stored account."""
        return cls.CLEANER if account.account_type == cls.CLEANER.value else cls.HOMEOWNER


class ProgramType(str, Enum):
    """The four referrer-type/referred-type programs."""
    CLIENT_TO_CLIENT = "client_to_client"
    CLIENT_TO_CLEANER = "client_to_cleaner"
    CLEANER_TO_CLEANER = "cleaner_to_cleaner"
    CLEANER_TO_CLIENT = "cleaner_to_client"

    @property
    def label(self) -> str:
        return _PROGRAM_LABELS[self]


_PROGRAM_LABELS = {
    ProgramType.CLIENT_TO_CLIENT: "Client-to-Client referral program",
    ProgramType.CLIENT_TO_CLEANER: "Client-to-Cleaner referral program",
    ProgramType.CLEANER_TO_CLEANER: "Cleaner-to-Cleaner referral program",
    ProgramType.CLEANER_TO_CLIENT: "Cleaner-to-Client referral program",
}


class RewardType(str, Enum):
    """How a qualified referral pays out."""
    CREDIT = "credit"        # Account balance
    BONUS = "bonus"          # Same mechanism, cleaner-facing label
    DISCOUNT = "discount"    # Percentage off, not a balance credit


class ReferralStatus(str, Enum):
    """Referral lifecycle states."""
    PENDING = "pending"
    QUALIFIED = "qualified"
    REWARDED = "rewarded"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @classmethod
    def values(cls) -> list[str]:
        return [status.value for status in cls]

    def can_transition_to(self, target: "ReferralStatus") -> bool:
        """Status only moves forward, or sideways out of an open state."""
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS = {
    ReferralStatus.PENDING: {
        ReferralStatus.QUALIFIED,
        ReferralStatus.REWARDED,
        ReferralStatus.EXPIRED,
        ReferralStatus.CANCELLED,
    },
    ReferralStatus.QUALIFIED: {
        ReferralStatus.REWARDED,
        ReferralStatus.EXPIRED,
        ReferralStatus.CANCELLED,
    },
    ReferralStatus.REWARDED: set(),
    ReferralStatus.EXPIRED: set(),
    ReferralStatus.CANCELLED: set(),
}
