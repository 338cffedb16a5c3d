"""Spending referral credits against appointments."""

from dataclasses import dataclass

from referral_engine.logging_config import get_logger
from referral_engine.referral.programs import format_dollars
from referral_engine.storage.repo import AccountRepository, AppointmentRepository

logger = get_logger(__name__)

SPEND_OPERATION = "appointment_credit"


@dataclass
class SpendResult:
    """Outcome of a credit spend."""
    success: bool
    amount_applied: int = 0
    remaining_credits: int | None = None
    new_price_cents: int | None = None
    error: str | None = None


class CreditsSpender:
    """Applies an account's credit balance to an appointment price."""

    def __init__(self, accounts: AccountRepository, appointments: AppointmentRepository):
        self.accounts = accounts
        self.appointments = appointments

    def spend(
        self,
        account_id: int,
        appointment_id: int,
        requested_cents: int | None = None,
    ) -> SpendResult:
        """Deduct credits and reduce the appointment price by the same amount.

        The amount applied is the smallest of the balance, the price and
        the requested amount. Nothing is written unless the whole spend
        succeeds.

        Args:
            account_id: Account spending its credits
            appointment_id: Appointment to discount
            requested_cents: Upper bound on the amount, None for no bound

        Returns:
            SpendResult describing what was applied or why nothing was
        """
        savepoint = self.accounts.savepoint()
        try:
            account = self.accounts.get_for_update(account_id)
            appointment = self.appointments.get_for_update(appointment_id)
            if not account or not appointment:
                savepoint.rollback()
                return SpendResult(success=False, error="User or appointment not found")

            candidates = [account.referral_credits or 0, appointment.price_cents or 0]
            if requested_cents is not None:
                candidates.append(requested_cents)
            applied = min(candidates)

            if applied <= 0:
                savepoint.rollback()
                return SpendResult(success=False, error="No credits available to apply")

            self.accounts.deduct_credits(
                account,
                applied,
                operation=SPEND_OPERATION,
                appointment_id=appointment.id,
                description=f"Applied {format_dollars(applied)} to appointment #{appointment.id}",
            )
            self.appointments.apply_discount(appointment, applied)
        except Exception:
            savepoint.rollback()
            raise
        savepoint.commit()

        logger.info(
            "credits_applied",
            account_id=account_id,
            appointment_id=appointment_id,
            amount=applied,
            remaining=account.referral_credits,
        )
        return SpendResult(
            success=True,
            amount_applied=applied,
            remaining_credits=account.referral_credits,
            new_price_cents=appointment.price_cents,
        )
