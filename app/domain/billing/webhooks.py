"""Stripe webhook handler - push path into the same idempotent reconcilers"""

import logging
from typing import Any, Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ...auth import Caller
from ...config import STRIPE_WEBHOOK_SECRET
from ...database import get_db
from .errors import AppointmentNotFound, Forbidden, InvalidState, SubscriptionNotReady
from .membership_service import MembershipSyncService
from .payment_service import PaymentReconciliationService
from .stripe_service import ExternalCharge, _field, _ref_id, get_stripe_service

logger = logging.getLogger(__name__)

webhooks_router = APIRouter(tags=["Webhooks"])

SUBSCRIPTION_EVENTS = ("customer.subscription.created", "customer.subscription.updated")


def _invoice_subscription_id(invoice: Any) -> Optional[str]:
    subscription_id = _ref_id(_field(invoice, "subscription"))
    if subscription_id:
        return subscription_id
    # Newer API versions nest it under parent.subscription_details
    details = _field(_field(invoice, "parent"), "subscription_details")
    return _ref_id(_field(details, "subscription"))


async def handle_stripe_event(event: Any, db: Session, provider) -> dict:
    """
    Dispatch a verified Stripe event.

    Outcomes a redelivery cannot fix (missing metadata, unknown appointment,
    subscription not billable) are logged and acknowledged. Provider errors
    propagate so Stripe retries the delivery.
    """
    event_type = _field(event, "type")
    event_id = _field(event, "id")
    obj = _field(_field(event, "data"), "object")
    logger.info(f"🔔 Stripe webhook received id={event_id} type={event_type}")

    try:
        if event_type == "payment_intent.succeeded":
            charge = ExternalCharge.from_stripe(obj)
            if not charge.appointment_id:
                logger.info(f"Payment intent {charge.id} has no appointment_id; ignoring")
                return {"status": "ignored", "event_type": event_type}
            result = PaymentReconciliationService(db, provider).reconcile_charge_event(charge)
            return {"status": "processed", "event_type": event_type, "message": result.message}

        if event_type in SUBSCRIPTION_EVENTS or event_type == "invoice.paid":
            if event_type == "invoice.paid":
                subscription_id = _invoice_subscription_id(obj)
            else:
                subscription_id = _field(obj, "id")
            if not subscription_id:
                logger.info(f"{event_type} {event_id} is not tied to a subscription; ignoring")
                return {"status": "ignored", "event_type": event_type}
            result = await MembershipSyncService(db, provider).sync_membership(subscription_id, Caller.system())
            return {"status": "processed", "event_type": event_type, "message": result.message}

    except (AppointmentNotFound, InvalidState, SubscriptionNotReady, Forbidden) as e:
        logger.warning(f"⚠️ Webhook {event_id} ({event_type}) not applied: {e.message}")
        return {"status": "skipped", "event_type": event_type, "message": e.message}

    logger.info(f"Unhandled Stripe event type {event_type}; acknowledged")
    return {"status": "ignored", "event_type": event_type}


@webhooks_router.post("/webhooks/stripe")
async def handle_stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    provider=Depends(get_stripe_service),
):
    """Verify the Stripe signature and reconcile payment/subscription events"""
    if not STRIPE_WEBHOOK_SECRET:
        logger.error("❌ STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=500, detail="Webhook not configured")

    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(status_code=400, detail="Missing Stripe signature")

    try:
        event = provider.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
    except ValueError as e:
        logger.error(f"❌ Invalid webhook payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload") from e
    except stripe.SignatureVerificationError as e:
        logger.error(f"❌ Invalid webhook signature: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature") from e

    return await handle_stripe_event(event, db, provider)
