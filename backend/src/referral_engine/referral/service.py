"""Referral service: one unit of work per operation."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from referral_engine.logging_config import get_logger
from referral_engine.referral.codes import CodeGenerator
from referral_engine.referral.credits import CreditsSpender, SpendResult
from referral_engine.referral.enums import AccountType, ProgramType
from referral_engine.referral.ledger import ReferralLedger
from referral_engine.referral.programs import (
    DEFAULT_PROGRAM_SETTINGS,
    describe_program,
    programs_for_referrer,
)
from referral_engine.referral.resolver import ProgramResolver, ValidationResult
from referral_engine.referral.rewards import RewardApplier
from referral_engine.referral.stats import ReferralStats, StatsAggregator
from referral_engine.settings import settings
from referral_engine.storage.db import Database
from referral_engine.storage.models import Account, CreditTransaction, Referral, ReferralConfig
from referral_engine.storage.repo import (
    AccountRepository,
    AppointmentRepository,
    ProgramConfigRepository,
    ReferralRepository,
)

logger = get_logger(__name__)


@dataclass
class ReferralEngine:
    """Repositories and components bound to a single session."""
    session: Session
    accounts: AccountRepository
    configs: ProgramConfigRepository
    referrals: ReferralRepository
    appointments: AppointmentRepository
    codes: CodeGenerator
    resolver: ProgramResolver
    rewards: RewardApplier
    ledger: ReferralLedger
    spender: CreditsSpender
    stats: StatsAggregator

    @classmethod
    def for_session(cls, session: Session) -> "ReferralEngine":
        accounts = AccountRepository(session)
        configs = ProgramConfigRepository(session)
        referrals = ReferralRepository(session)
        appointments = AppointmentRepository(session)
        rewards = RewardApplier(accounts)
        return cls(
            session=session,
            accounts=accounts,
            configs=configs,
            referrals=referrals,
            appointments=appointments,
            codes=CodeGenerator(accounts),
            resolver=ProgramResolver(accounts, configs, referrals),
            rewards=rewards,
            ledger=ReferralLedger(accounts, referrals, rewards, appointments),
            spender=CreditsSpender(accounts, appointments),
            stats=StatsAggregator(accounts, referrals),
        )


def config_to_dict(config: ReferralConfig) -> dict[str, Any]:
    """Column values of a configuration row."""
    data = {}
    for column in ReferralConfig.__table__.columns:
        value = getattr(config, column.key)
        if isinstance(value, Decimal):
            value = float(value)
        data[column.key] = value
    return data


class ReferralService:
    """Entry point used by the API and the CLI.

    Each method opens its own session, so a method either commits all of
    its writes or none of them.
    """

    def __init__(self, database: Database):
        self.db = database

    # ==================== ACCOUNTS ====================

    def get_account(self, account_id: int) -> Account | None:
        with self.db.session() as session:
            return AccountRepository(session).get_by_id(account_id)

    # ==================== CODES ====================

    def validate_code(
        self,
        code: str | None,
        referred_account_type: str | AccountType | None = AccountType.HOMEOWNER,
    ) -> ValidationResult:
        """Check whether a code can be used by an account of the given type."""
        with self.db.session() as session:
            return ReferralEngine.for_session(session).resolver.validate(code, referred_account_type)

    def my_code(self, account_id: int) -> dict[str, Any] | None:
        """Code, share message and the programs the account can refer into."""
        with self.db.session() as session:
            engine = ReferralEngine.for_session(session)
            account = engine.accounts.get_by_id(account_id)
            if not account:
                return None

            code = account.referral_code or engine.codes.generate(account)
            allowed = {program.value for program in programs_for_referrer(AccountType.of(account))}
            current = self._current_programs(engine)

        return {
            "referral_code": code,
            "share_message": (
                f"Use my code {code} to sign up for {settings.brand_name} "
                "and we both get rewards!"
            ),
            "programs": [p for p in current["programs"] if p["type"] in allowed],
        }

    def log_share(self, account_id: int, platform: str | None = None) -> None:
        logger.info("referral_code_shared", account_id=account_id, platform=platform or "unknown")

    # ==================== PROGRAMS ====================

    def current_programs(self) -> dict[str, Any]:
        """Enabled programs with display descriptions."""
        with self.db.session() as session:
            return self._current_programs(ReferralEngine.for_session(session))

    @staticmethod
    def _current_programs(engine: ReferralEngine) -> dict[str, Any]:
        formatted = engine.configs.get_formatted()
        if not formatted:
            return {"active": False, "programs": []}

        programs = [
            describe_program(program_type, formatted[program_type.value])
            for program_type in ProgramType
            if formatted[program_type.value]["enabled"]
        ]
        return {"active": bool(programs), "programs": programs}

    def get_config(self) -> dict[str, Any]:
        """Active configuration, or the defaults when none is stored."""
        with self.db.session() as session:
            configs = ProgramConfigRepository(session)
            active = configs.get_active()
            if active:
                return {
                    "source": "database",
                    "config": config_to_dict(active),
                    "formatted_config": configs.get_formatted(),
                }
        return {
            "source": "defaults",
            "config": None,
            "formatted_config": {
                program: dict(values) for program, values in DEFAULT_PROGRAM_SETTINGS.items()
            },
        }

    def update_config(
        self,
        programs: dict[str, dict[str, Any]],
        updated_by_id: int | None = None,
        change_note: str | None = None,
    ) -> dict[str, Any]:
        """Store a new configuration snapshot and return it."""
        with self.db.session() as session:
            configs = ProgramConfigRepository(session)
            config = configs.update_config(programs, updated_by_id, change_note)
            return {
                "config": config_to_dict(config),
                "formatted_config": configs.get_formatted(),
            }

    def config_history(self, limit: int = 20) -> list[ReferralConfig]:
        with self.db.session() as session:
            return ProgramConfigRepository(session).get_history(limit)

    # ==================== REFERRALS ====================

    def register_signup(
        self,
        code: str,
        referred_account_id: int,
    ) -> tuple[ValidationResult, Referral | None]:
        """Validate a code for a new account and record the referral.

        Returns:
            The validation result, and the referral when it was valid
        """
        with self.db.session() as session:
            engine = ReferralEngine.for_session(session)
            account = engine.accounts.get_by_id(referred_account_id)
            if not account:
                return ValidationResult.failure("ACCOUNT_NOT_FOUND", "Account not found"), None

            result = engine.resolver.validate(code, AccountType.of(account))
            if not result.valid:
                return result, None

            referral = engine.ledger.create(code, account, result.program_type, result.rewards)
            return result, referral

    def process_completion(self, appointment_id: int, referred_account_id: int) -> Referral | None:
        """Count a completed appointment for the account's pending referral."""
        with self.db.session() as session:
            return ReferralEngine.for_session(session).ledger.process_completion(
                appointment_id, referred_account_id
            )

    def update_status(self, referral_id: int, new_status: str) -> Referral:
        with self.db.session() as session:
            return ReferralEngine.for_session(session).ledger.update_status(referral_id, new_status)

    def list_referrals(
        self,
        status: str | None = None,
        program_type: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[Referral]:
        with self.db.session() as session:
            return ReferralEngine.for_session(session).ledger.list_referrals(
                status=status,
                program_type=program_type,
                start_date=start_date,
                end_date=end_date,
            )

    def referrals_by(self, referrer_id: int) -> list[Referral]:
        with self.db.session() as session:
            return ReferralRepository(session).list_by_referrer(referrer_id)

    # ==================== CREDITS ====================

    def stats(self, account_id: int) -> ReferralStats | None:
        with self.db.session() as session:
            return ReferralEngine.for_session(session).stats.stats(account_id)

    def available_credits(self, account_id: int) -> int:
        with self.db.session() as session:
            return ReferralEngine.for_session(session).stats.available_credits(account_id)

    def credit_history(self, account_id: int, limit: int = 50) -> list[CreditTransaction]:
        """Most recent credit ledger entries, newest first."""
        with self.db.session() as session:
            return AccountRepository(session).list_transactions(account_id, limit)

    def spend_credits(
        self,
        account_id: int,
        appointment_id: int,
        requested_cents: int | None = None,
    ) -> SpendResult:
        """Apply credits to an appointment in a single transaction."""
        with self.db.session() as session:
            return ReferralEngine.for_session(session).spender.spend(
                account_id, appointment_id, requested_cents
            )
