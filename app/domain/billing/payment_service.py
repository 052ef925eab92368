"""Payment reconciliation - record exactly one completed payment per appointment"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...auth import Caller
from ...config import CURRENCY
from ...database import privileged
from ...models import Appointment, Payment
from .discovery import default_strategies, first_match
from .errors import AppointmentNotFound, InvalidState, ProviderError, Unauthorized
from .payouts import compute_payout
from .repository import BillingRepository
from .stripe_service import ExternalCharge, stripe_service

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    success: bool
    payment: Optional[Payment]
    message: str
    created: bool = False


class PaymentReconciliationService:
    """
    Idempotent reconciler between Stripe charges and local payment rows.

    Safe to run concurrently with itself and with the webhook handler: the
    completed-payment check runs before any Stripe call, and the partial
    unique index on ``payments(appointment_id) WHERE status = 'completed'``
    turns a lost insert race into a re-read of the winning row.
    """

    def __init__(self, db: Session, provider=None):
        self.db = db
        self.provider = provider or stripe_service
        self.repo = BillingRepository()

    def _get_appointment(self, appointment_id) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise AppointmentNotFound(f"Appointment {appointment_id} not found")
        return appointment

    @staticmethod
    def authorize(appointment: Appointment, caller: Caller) -> None:
        if caller.is_trusted or appointment.senior_id == caller.user_id:
            return
        logger.warning(f"⚠️ User {caller.user_id} tried to reconcile appointment {appointment.id}")
        raise Unauthorized("Not authorized for this appointment")

    async def reconcile_payment(
        self, appointment_id, caller: Caller, charge_hint: Optional[str] = None
    ) -> ReconcileResult:
        appointment = self._get_appointment(appointment_id)
        self.authorize(appointment, caller)

        existing = self.repo.get_completed_payment(self.db, appointment.id)
        if existing:
            logger.info(f"🔄 Appointment {appointment.id} already has payment {existing.id}")
            return ReconcileResult(True, existing, "Payment already exists")

        requester = self.repo.get_user_by_id(self.db, appointment.senior_id)
        customer_id = requester.stripe_customer_id if requester else None

        strategies = default_strategies(self.provider, charge_hint=charge_hint, customer_id=customer_id)
        outcome = await first_match(strategies, appointment.id)

        if not outcome.found:
            if outcome.all_failed:
                raise ProviderError(
                    f"All charge lookups failed for appointment {appointment.id}: "
                    + ", ".join(outcome.attempted)
                )
            logger.info(f"🔍 No succeeded charge yet for appointment {appointment.id}")
            return ReconcileResult(False, None, "No payment found in Stripe")

        return self.record_charge(appointment, outcome.charge)

    def record_charge(self, appointment: Appointment, charge: ExternalCharge) -> ReconcileResult:
        """Insert the completed payment for a matched charge and confirm the appointment"""
        if not charge.matches(appointment.id):
            raise InvalidState(f"Charge {charge.id} does not belong to appointment {appointment.id}")

        split = compute_payout(charge, appointment)
        payment = Payment(
            appointment_id=appointment.id,
            senior_id=appointment.senior_id,
            specialist_id=appointment.specialist_id,
            amount=split.amount,
            currency=CURRENCY,
            status="completed",
            payment_method="card",
            stripe_payment_id=charge.id,
            stripe_customer_id=charge.customer,
            hours_worked=split.hours_worked,
            mileage=split.mileage,
            specialist_pay=split.specialist_pay,
            mileage_pay=split.mileage_pay,
            company_revenue=split.company_revenue,
            tax_amount=split.tax_amount,
            base_service_amount=split.base_service_amount,
            travel_fee_amount=split.travel_fee_amount,
        )

        was_pending = appointment.status == "pending"
        try:
            with privileged(self.db):
                self.repo.add_payment(self.db, payment)
                confirmed = was_pending and self.repo.confirm_if_pending(self.db, appointment.id)
                self.db.commit()
        except IntegrityError:
            self.db.rollback()
            winner = self.repo.get_completed_payment(self.db, appointment.id) or self.repo.get_payment_by_charge(
                self.db, charge.id
            )
            if winner is None:
                raise
            logger.info(f"🔄 Payment for appointment {appointment.id} was recorded concurrently ({winner.id})")
            return ReconcileResult(True, winner, "Payment already exists")

        self.db.refresh(payment)
        if was_pending and not confirmed:
            logger.info(f"Appointment {appointment.id} left pending before confirmation; status unchanged")
        logger.info(
            f"✅ Recorded payment {payment.id} for appointment {appointment.id}: "
            f"${split.amount:.2f} (specialist ${split.specialist_pay:.2f}, margin ${split.company_revenue:.2f})"
        )
        return ReconcileResult(True, payment, "Payment synced successfully", created=True)

    def reconcile_charge_event(self, charge: ExternalCharge) -> ReconcileResult:
        """Record a charge pushed by Stripe (webhook); same idempotent path as polling"""
        raw_id = charge.appointment_id
        if not raw_id:
            raise InvalidState(f"Charge {charge.id} has no appointment_id metadata")
        try:
            appointment_id = int(raw_id)
        except (TypeError, ValueError) as e:
            raise InvalidState(f"Charge {charge.id} has malformed appointment_id {raw_id!r}") from e

        appointment = self._get_appointment(appointment_id)
        existing = self.repo.get_completed_payment(self.db, appointment.id)
        if existing:
            logger.info(f"🔄 Webhook replay for appointment {appointment.id}; payment {existing.id} exists")
            return ReconcileResult(True, existing, "Payment already exists")
        return self.record_charge(appointment, charge)

    def get_payment_status(self, appointment_id, caller: Caller) -> dict:
        """Completed payment (if any) plus every payment row, newest first"""
        appointment = self._get_appointment(appointment_id)
        self.authorize(appointment, caller)

        payments = self.repo.list_payments(self.db, appointment.id)
        completed = next((p for p in payments if p.status == "completed"), None)
        return {
            "appointment_id": appointment.id,
            "appointment_status": appointment.status,
            "completed_payment": completed,
            "payments": payments,
            "has_any_payment": bool(payments),
        }
