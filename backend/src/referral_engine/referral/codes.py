"""Referral code generation."""

import re
import secrets
import string

from slugify import slugify

from referral_engine.logging_config import get_logger
from referral_engine.referral.exceptions import CodeGenerationError
from referral_engine.storage.models import Account
from referral_engine.storage.repo import AccountRepository

logger = get_logger(__name__)

MAX_ATTEMPTS = 10
PREFIX_LENGTH = 4
SUFFIX_LENGTH = 4
SUFFIX_ALPHABET = string.ascii_uppercase + string.digits

_NON_CODE_CHARS = re.compile(r"[^A-Z0-9]")


def code_prefix(first_name: str | None) -> str:
    """First four code-safe characters of a first name, padded with X.

    Non-ASCII names are transliterated ("Émile" -> "EMIL"); names with
    nothing usable fall back to "USER".
    """
    cleaned = _NON_CODE_CHARS.sub("", slugify(first_name or "", separator="").upper())
    if not cleaned:
        cleaned = "USER"
    return cleaned[:PREFIX_LENGTH].ljust(PREFIX_LENGTH, "X")


def random_suffix() -> str:
    """Four random uppercase alphanumerics from a CSPRNG."""
    return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))


def fallback_code(account_id: int) -> str:
    """Code derived from the account id."""
    return f"REF{account_id}{secrets.token_hex(2).upper()}"


class CodeGenerator:
    """Issues unique referral codes.

    Each candidate is claimed with a write that the unique constraint on
    accounts.referral_code can reject, so two concurrent signups can never
    end up holding the same code.
    """

    def __init__(self, accounts: AccountRepository, max_attempts: int = MAX_ATTEMPTS):
        self.accounts = accounts
        self.max_attempts = max_attempts

    def generate(self, account: Account) -> str:
        """Generate, persist and return a referral code for an account.

        Args:
            account: Account to receive the code

        Returns:
            The stored code

        Raises:
            CodeGenerationError: If even the id-derived fallback could not be stored
        """
        prefix = code_prefix(account.first_name)

        for attempt in range(1, self.max_attempts + 1):
            code = prefix + random_suffix()
            if self.accounts.claim_code(account, code):
                logger.info(
                    "referral_code_generated",
                    account_id=account.id,
                    code=code,
                    attempts=attempt,
                )
                return code

        # Fallback embeds the account id; only the hex tail can collide
        for _ in range(self.max_attempts):
            code = fallback_code(account.id)
            if self.accounts.claim_code(account, code):
                logger.warning(
                    "referral_code_fallback_used",
                    account_id=account.id,
                    code=code,
                )
                return code

        raise CodeGenerationError(f"Could not assign a referral code to account {account.id}")
