"""Program matrix and reward terms.

Maps a (referrer type, referred type) pair to one of the four programs and
reads that program's reward terms out of a stored configuration snapshot.
"""

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any

from referral_engine.referral.enums import AccountType, ProgramType, RewardType
from referral_engine.storage.models import ReferralConfig

# Total over AccountType x AccountType, so every resolved pair has a program
PROGRAM_MATRIX: dict[tuple[AccountType, AccountType], ProgramType] = {
    (AccountType.HOMEOWNER, AccountType.HOMEOWNER): ProgramType.CLIENT_TO_CLIENT,
    (AccountType.HOMEOWNER, AccountType.CLEANER): ProgramType.CLIENT_TO_CLEANER,
    (AccountType.CLEANER, AccountType.CLEANER): ProgramType.CLEANER_TO_CLEANER,
    (AccountType.CLEANER, AccountType.HOMEOWNER): ProgramType.CLEANER_TO_CLIENT,
}

# Settings used when no configuration has been stored yet
DEFAULT_PROGRAM_SETTINGS: dict[str, dict[str, Any]] = {
    ProgramType.CLIENT_TO_CLIENT.value: {
        "enabled": False,
        "referrer_reward": 2500,
        "referred_reward": 2500,
        "cleanings_required": 1,
        "reward_type": RewardType.CREDIT.value,
        "max_per_month": None,
    },
    ProgramType.CLIENT_TO_CLEANER.value: {
        "enabled": False,
        "referrer_reward": 5000,
        "cleanings_required": 3,
        "reward_type": RewardType.CREDIT.value,
        "max_per_month": None,
    },
    ProgramType.CLEANER_TO_CLEANER.value: {
        "enabled": False,
        "referrer_reward": 5000,
        "cleanings_required": 1,
        "reward_type": RewardType.BONUS.value,
        "max_per_month": None,
    },
    ProgramType.CLEANER_TO_CLIENT.value: {
        "enabled": False,
        "discount_percent": 10,
        "min_referrals": 3,
        "reward_type": RewardType.DISCOUNT.value,
        "max_per_month": None,
    },
}

_PROGRAM_NAMES = {
    ProgramType.CLIENT_TO_CLIENT: "Refer a Friend",
    ProgramType.CLIENT_TO_CLEANER: "Refer a Cleaner",
    ProgramType.CLEANER_TO_CLEANER: "Cleaner Referral Bonus",
    ProgramType.CLEANER_TO_CLIENT: "Cleaner Client Referral",
}


@dataclass(frozen=True)
class ProgramRewards:
    """Resolved reward terms of one program."""
    enabled: bool
    referrer_reward: int
    referred_reward: int
    cleanings_required: int
    reward_type: RewardType
    max_per_month: int | None = None
    discount_percent: Decimal | None = None
    min_referrals: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["reward_type"] = self.reward_type.value
        if self.discount_percent is not None:
            data["discount_percent"] = float(self.discount_percent)
        return data


def resolve_program(referrer_type: AccountType, referred_type: AccountType) -> ProgramType:
    """Program that applies to a referrer/referred pair."""
    return PROGRAM_MATRIX[(referrer_type, referred_type)]


def programs_for_referrer(referrer_type: AccountType) -> list[ProgramType]:
    """Programs an account of the given type can refer into."""
    return [program for (referrer, _), program in PROGRAM_MATRIX.items() if referrer is referrer_type]


def rewards_for(config: ReferralConfig, program_type: ProgramType) -> ProgramRewards:
    """Read one program's terms from a configuration row."""
    prefix = program_type.value

    if program_type is ProgramType.CLEANER_TO_CLIENT:
        return ProgramRewards(
            enabled=bool(config.cleaner_to_client_enabled),
            referrer_reward=0,
            referred_reward=0,
            cleanings_required=1,
            reward_type=RewardType(config.cleaner_to_client_reward_type),
            max_per_month=config.cleaner_to_client_max_per_month,
            discount_percent=Decimal(config.cleaner_to_client_discount_percent),
            min_referrals=config.cleaner_to_client_min_referrals,
        )

    return ProgramRewards(
        enabled=bool(getattr(config, f"{prefix}_enabled")),
        referrer_reward=getattr(config, f"{prefix}_referrer_reward") or 0,
        # Only client-to-client rewards the referred party
        referred_reward=getattr(config, f"{prefix}_referred_reward", 0) or 0,
        cleanings_required=getattr(config, f"{prefix}_cleanings_required") or 1,
        reward_type=RewardType(getattr(config, f"{prefix}_reward_type")),
        max_per_month=getattr(config, f"{prefix}_max_per_month"),
    )


def format_config(config: ReferralConfig) -> dict[str, dict[str, Any]]:
    """Program-keyed view of a configuration row."""
    formatted = {}
    for program_type in ProgramType:
        data = rewards_for(config, program_type).to_dict()
        if program_type is ProgramType.CLEANER_TO_CLIENT:
            for key in ("referrer_reward", "referred_reward", "cleanings_required"):
                data.pop(key)
        else:
            data.pop("discount_percent")
            data.pop("min_referrals")
            if program_type is not ProgramType.CLIENT_TO_CLIENT:
                data.pop("referred_reward")
        formatted[program_type.value] = data
    return formatted


def format_dollars(cents: int) -> str:
    """Render integer cents as a dollar string."""
    return f"${cents / 100:.2f}"


def describe_program(program_type: ProgramType, terms: dict[str, Any]) -> dict[str, Any]:
    """Public description of an enabled program.

    Args:
        program_type: Program to describe
        terms: That program's entry from format_config()

    Returns:
        Dict with type, name, description and the relevant reward fields
    """
    program: dict[str, Any] = {
        "type": program_type.value,
        "name": _PROGRAM_NAMES[program_type],
    }

    if program_type is ProgramType.CLIENT_TO_CLIENT:
        program["description"] = (
            f"Give {format_dollars(terms['referred_reward'])}, "
            f"Get {format_dollars(terms['referrer_reward'])}"
        )
        program["referrer_reward"] = terms["referrer_reward"]
        program["referred_reward"] = terms["referred_reward"]
        program["cleanings_required"] = terms["cleanings_required"]
    elif program_type is ProgramType.CLIENT_TO_CLEANER:
        program["description"] = (
            f"Earn {format_dollars(terms['referrer_reward'])} when they complete "
            f"{terms['cleanings_required']} cleaning(s)"
        )
        program["referrer_reward"] = terms["referrer_reward"]
        program["cleanings_required"] = terms["cleanings_required"]
    elif program_type is ProgramType.CLEANER_TO_CLEANER:
        program["description"] = (
            f"Earn {format_dollars(terms['referrer_reward'])} bonus when your referral "
            f"completes {terms['cleanings_required']} cleaning(s)"
        )
        program["referrer_reward"] = terms["referrer_reward"]
        program["cleanings_required"] = terms["cleanings_required"]
    else:
        discount = terms["discount_percent"]
        program["description"] = (
            f"Refer {terms['min_referrals']} clients for a {discount:g}% discount"
        )
        program["min_referrals"] = terms["min_referrals"]
        program["discount_percent"] = discount

    return program
