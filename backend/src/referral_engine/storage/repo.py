"""Repository layer for data access."""

from datetime import datetime
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, SessionTransaction, selectinload

from referral_engine.logging_config import get_logger
from referral_engine.referral.enums import ProgramType, ReferralStatus
from referral_engine.referral.programs import DEFAULT_PROGRAM_SETTINGS, format_config
from referral_engine.storage.models import (
    Account,
    Appointment,
    CreditTransaction,
    Referral,
    ReferralConfig,
    utcnow,
)

logger = get_logger(__name__)

# Columns that are bookkeeping rather than program settings
_CONFIG_META_COLUMNS = {"id", "is_active", "updated_by_id", "change_note", "created_at"}


class AccountRepository:
    """Repository for Account entities."""

    def __init__(self, session: Session):
        self.session = session

    def savepoint(self) -> SessionTransaction:
        """Open a nested transaction on the shared session."""
        return self.session.begin_nested()

    def get_by_id(self, account_id: int) -> Account | None:
        """Get account by ID."""
        return self.session.get(Account, account_id)

    def get_by_code(self, code: str) -> Account | None:
        """Get the account holding a referral code (exact match)."""
        return self.session.scalar(select(Account).where(Account.referral_code == code))

    def get_for_update(self, account_id: int) -> Account | None:
        """Get account by ID with its row locked for the current transaction."""
        stmt = (
            select(Account)
            .where(Account.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.scalar(stmt)

    def claim_code(self, account: Account, code: str) -> bool:
        """Try to assign a referral code, relying on the unique constraint.

        Args:
            account: Account to receive the code
            code: Candidate code

        Returns:
            True if stored, False if another account already holds it
        """
        try:
            with self.session.begin_nested():
                account.referral_code = code
        except IntegrityError:
            logger.debug("referral_code_collision", account_id=account.id, code=code)
            return False
        return True

    def add_credits(
        self,
        account: Account,
        amount: int,
        operation: str,
        referral_id: int | None = None,
        appointment_id: int | None = None,
        description: str | None = None,
    ) -> CreditTransaction:
        """Add cents to an account balance and record the ledger entry."""
        return self._record(account, amount, operation, referral_id, appointment_id, description)

    def deduct_credits(
        self,
        account: Account,
        amount: int,
        operation: str,
        referral_id: int | None = None,
        appointment_id: int | None = None,
        description: str | None = None,
    ) -> CreditTransaction:
        """Remove cents from an account balance and record the ledger entry."""
        if amount > account.referral_credits:
            raise ValueError(
                f"Cannot deduct {amount} from account {account.id} holding {account.referral_credits}"
            )
        return self._record(account, -amount, operation, referral_id, appointment_id, description)

    def _record(
        self,
        account: Account,
        delta: int,
        operation: str,
        referral_id: int | None,
        appointment_id: int | None,
        description: str | None,
    ) -> CreditTransaction:
        account.referral_credits = (account.referral_credits or 0) + delta
        transaction = CreditTransaction(
            account_id=account.id,
            amount=delta,
            balance_after=account.referral_credits,
            operation=operation,
            referral_id=referral_id,
            appointment_id=appointment_id,
            description=description,
        )
        self.session.add(transaction)
        self.session.flush()
        return transaction

    def list_transactions(self, account_id: int, limit: int = 50) -> list[CreditTransaction]:
        """Most recent credit ledger entries for an account."""
        stmt = (
            select(CreditTransaction)
            .where(CreditTransaction.account_id == account_id)
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))


class ProgramConfigRepository:
    """Repository for ReferralConfig snapshots."""

    def __init__(self, session: Session):
        self.session = session

    def get_active(self) -> ReferralConfig | None:
        """Get the active configuration snapshot."""
        stmt = (
            select(ReferralConfig)
            .where(ReferralConfig.is_active.is_(True))
            .order_by(ReferralConfig.created_at.desc(), ReferralConfig.id.desc())
            .limit(1)
        )
        return self.session.scalar(stmt)

    def get_formatted(self) -> dict[str, dict[str, Any]] | None:
        """Program-keyed view of the active configuration, or None."""
        config = self.get_active()
        if not config:
            return None
        return format_config(config)

    def update_config(
        self,
        programs: dict[str, dict[str, Any]],
        updated_by_id: int | None = None,
        change_note: str | None = None,
    ) -> ReferralConfig:
        """Store a new active snapshot.

        Settings not mentioned in ``programs`` carry over from the current
        active snapshot (or the defaults when there is none).

        Args:
            programs: Program type -> partial settings
            updated_by_id: Account making the change
            change_note: Free-text reason

        Returns:
            The new active configuration
        """
        current = self.get_active()
        new_config = ReferralConfig(
            is_active=True,
            updated_by_id=updated_by_id,
            change_note=change_note,
        )

        if current:
            for column in ReferralConfig.__table__.columns:
                if column.key not in _CONFIG_META_COLUMNS:
                    setattr(new_config, column.key, getattr(current, column.key))
        else:
            self._apply_settings(new_config, DEFAULT_PROGRAM_SETTINGS)

        self._apply_settings(new_config, programs)
        if current:
            current.is_active = False

        self.session.add(new_config)
        self.session.flush()

        logger.info(
            "referral_config_updated",
            config_id=new_config.id,
            previous_id=current.id if current else None,
            updated_by=updated_by_id,
        )
        return new_config

    def get_history(self, limit: int = 20) -> list[ReferralConfig]:
        """Configuration snapshots, newest first."""
        stmt = (
            select(ReferralConfig)
            .options(selectinload(ReferralConfig.updated_by))
            .order_by(ReferralConfig.created_at.desc(), ReferralConfig.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    @staticmethod
    def _apply_settings(config: ReferralConfig, programs: dict[str, dict[str, Any]]) -> None:
        for program, values in programs.items():
            prefix = ProgramType(program).value
            for field, value in values.items():
                column = f"{prefix}_{field}"
                if not hasattr(ReferralConfig, column):
                    raise ValueError(f"Unknown setting '{field}' for {prefix}")
                setattr(config, column, value)


class ReferralRepository:
    """Repository for Referral entities."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, **fields: Any) -> Referral:
        """Insert a referral.

        Raises:
            IntegrityError: If the referred account already has a referral
        """
        referral = Referral(**fields)
        with self.session.begin_nested():
            self.session.add(referral)
        return referral

    def get_by_id(self, referral_id: int) -> Referral | None:
        """Get referral by ID."""
        return self.session.get(Referral, referral_id)

    def get_for_update(self, referral_id: int) -> Referral | None:
        """Get referral by ID with its row locked."""
        stmt = (
            select(Referral)
            .where(Referral.id == referral_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.scalar(stmt)

    def find_by_referred_id(self, referred_id: int) -> Referral | None:
        """Get the referral in which an account is the referred party."""
        return self.session.scalar(select(Referral).where(Referral.referred_id == referred_id))

    def find_pending_for_update(self, referred_id: int) -> Referral | None:
        """Get and lock the pending referral for a referred account."""
        stmt = (
            select(Referral)
            .where(
                Referral.referred_id == referred_id,
                Referral.status == ReferralStatus.PENDING.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.scalar(stmt)

    def list_filtered(
        self,
        status: str | None = None,
        program_type: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[Referral]:
        """List referrals with optional filters, newest first."""
        stmt = select(Referral).options(
            selectinload(Referral.referrer),
            selectinload(Referral.referred),
        )
        if status:
            stmt = stmt.where(Referral.status == status)
        if program_type:
            stmt = stmt.where(Referral.program_type == program_type)
        if start_date:
            stmt = stmt.where(Referral.created_at >= start_date)
        if end_date:
            stmt = stmt.where(Referral.created_at <= end_date)
        stmt = stmt.order_by(Referral.created_at.desc(), Referral.id.desc())
        return list(self.session.scalars(stmt))

    def list_by_referrer(self, referrer_id: int) -> list[Referral]:
        """Referrals made by an account, newest first."""
        stmt = (
            select(Referral)
            .options(selectinload(Referral.referred))
            .where(Referral.referrer_id == referrer_id)
            .order_by(Referral.created_at.desc(), Referral.id.desc())
        )
        return list(self.session.scalars(stmt))

    def count_monthly(
        self,
        referrer_id: int,
        program_type: str,
        now: datetime | None = None,
    ) -> int:
        """Count a referrer's referrals of one program in the current calendar month (UTC)."""
        now = now or utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if month_start.month == 12:
            next_month = month_start.replace(year=month_start.year + 1, month=1)
        else:
            next_month = month_start.replace(month=month_start.month + 1)

        stmt = select(func.count(Referral.id)).where(
            Referral.referrer_id == referrer_id,
            Referral.program_type == program_type,
            Referral.created_at >= month_start,
            Referral.created_at < next_month,
        )
        return self.session.scalar(stmt) or 0

    def stats_for_referrer(self, referrer_id: int) -> dict[str, int]:
        """Status counts and total applied referrer rewards."""
        rows = self.session.execute(
            select(Referral.status, func.count(Referral.id))
            .where(Referral.referrer_id == referrer_id)
            .group_by(Referral.status)
        ).all()
        counts = {status: count for status, count in rows}

        total_earned = self.session.scalar(
            select(
                func.coalesce(
                    func.sum(
                        case(
                            (Referral.referrer_reward_applied.is_(True), Referral.referrer_reward_amount),
                            else_=0,
                        )
                    ),
                    0,
                )
            ).where(Referral.referrer_id == referrer_id)
        )

        return {
            "total_referrals": sum(counts.values()),
            "pending": counts.get(ReferralStatus.PENDING.value, 0),
            "qualified": counts.get(ReferralStatus.QUALIFIED.value, 0),
            "rewarded": counts.get(ReferralStatus.REWARDED.value, 0),
            "total_earned": int(total_earned or 0),
        }


class AppointmentRepository:
    """Repository for priced appointments."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, appointment_id: int) -> Appointment | None:
        """Get appointment by ID."""
        return self.session.get(Appointment, appointment_id)

    def get_for_update(self, appointment_id: int) -> Appointment | None:
        """Get appointment by ID with its row locked."""
        stmt = (
            select(Appointment)
            .where(Appointment.id == appointment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.scalar(stmt)

    def apply_discount(self, appointment: Appointment, amount: int) -> Appointment:
        """Reduce the stored price, remembering the pre-credit price once."""
        if appointment.original_price_cents is None:
            appointment.original_price_cents = appointment.price_cents
        appointment.price_cents -= amount
        self.session.flush()
        return appointment

    def mark_completed(self, appointment_id: int) -> Appointment | None:
        """Flag an appointment as completed; unknown ids are ignored."""
        appointment = self.get_by_id(appointment_id)
        if appointment is None:
            logger.debug("appointment_not_tracked", appointment_id=appointment_id)
            return None
        appointment.completed = True
        self.session.flush()
        return appointment
