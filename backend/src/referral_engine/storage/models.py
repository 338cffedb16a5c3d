"""Database models for the referral engine - unified model set."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Account(Base):
    """Platform account as seen by the referral engine.

    Owned by the account subsystem; the engine reads identity and type,
    claims a referral code and moves the referral credit balance.
    """

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)

    # NULL means homeowner
    account_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_owner: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Referral
    referral_code: Mapped[str | None] = mapped_column(
        String(20), nullable=True, unique=True, index=True
    )
    referral_credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # cents
    account_frozen: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, type={self.account_type}, code={self.referral_code})>"


class Appointment(Base):
    """Priced, billable appointment that credits can be spent against."""

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id"), nullable=False, index=True
    )
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    original_price_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, account={self.account_id}, price={self.price_cents})>"


class CreditTransaction(Base):
    """Referral credit ledger entry."""

    __tablename__ = "credit_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id"), nullable=False, index=True
    )

    # Positive = credit, Negative = debit
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    operation: Mapped[str] = mapped_column(String(50), nullable=False)  # referral_reward, appointment_credit

    referral_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("referrals.id"), nullable=True)
    appointment_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("appointments.id"), nullable=True
    )
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<CreditTransaction(id={self.id}, account={self.account_id}, amount={self.amount})>"


class ReferralConfig(Base):
    """Versioned referral program configuration.

    Every update inserts a new row and deactivates the previous one, so the
    table doubles as the change history.
    """

    __tablename__ = "referral_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    # Homeowner refers homeowner
    client_to_client_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    client_to_client_referrer_reward: Mapped[int] = mapped_column(Integer, default=2500, nullable=False)
    client_to_client_referred_reward: Mapped[int] = mapped_column(Integer, default=2500, nullable=False)
    client_to_client_cleanings_required: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    client_to_client_reward_type: Mapped[str] = mapped_column(String(20), default="credit", nullable=False)
    client_to_client_max_per_month: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Homeowner refers cleaner
    client_to_cleaner_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    client_to_cleaner_referrer_reward: Mapped[int] = mapped_column(Integer, default=5000, nullable=False)
    client_to_cleaner_cleanings_required: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    client_to_cleaner_reward_type: Mapped[str] = mapped_column(String(20), default="credit", nullable=False)
    client_to_cleaner_max_per_month: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Cleaner refers cleaner
    cleaner_to_cleaner_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cleaner_to_cleaner_referrer_reward: Mapped[int] = mapped_column(Integer, default=5000, nullable=False)
    cleaner_to_cleaner_cleanings_required: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    cleaner_to_cleaner_reward_type: Mapped[str] = mapped_column(String(20), default="bonus", nullable=False)
    cleaner_to_cleaner_max_per_month: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Cleaner refers homeowner (discount, no cash reward)
    cleaner_to_client_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cleaner_to_client_discount_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), default=Decimal("10.00"), nullable=False
    )
    cleaner_to_client_min_referrals: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    cleaner_to_client_reward_type: Mapped[str] = mapped_column(String(20), default="discount", nullable=False)
    cleaner_to_client_max_per_month: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Audit
    updated_by_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("accounts.id"), nullable=True)
    change_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    updated_by: Mapped[Account | None] = relationship("Account", foreign_keys=[updated_by_id])

    def __repr__(self) -> str:
        return f"<ReferralConfig(id={self.id}, active={self.is_active})>"


class Referral(Base):
    """One referrer/referred relationship and its reward progress."""

    __tablename__ = "referrals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    referrer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id"), nullable=False, index=True
    )
    # An account can be referred at most once
    referred_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id"), nullable=False, unique=True
    )
    referral_code: Mapped[str] = mapped_column(String(20), nullable=False)
    program_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)

    # Progress
    cleanings_required: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    cleanings_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Reward snapshot taken at creation
    referrer_reward_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    referred_reward_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reward_type: Mapped[str] = mapped_column(String(20), default="credit", nullable=False)
    discount_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    min_referrals: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Payout
    referrer_reward_applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    referrer_reward_applied_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    referred_reward_applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    referred_reward_applied_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    qualified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    referrer: Mapped[Account] = relationship("Account", foreign_keys=[referrer_id])
    referred: Mapped[Account] = relationship("Account", foreign_keys=[referred_id])

    def __repr__(self) -> str:
        return (
            f"<Referral(id={self.id}, referrer={self.referrer_id}, "
            f"referred={self.referred_id}, status={self.status})>"
        )
