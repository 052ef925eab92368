"""Billing router - FastAPI endpoints for payment and membership reconciliation"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import Caller, get_caller
from ...config import RECONCILE_RATE_LIMIT_PER_MINUTE
from ...database import get_db
from ...rate_limiter import create_rate_limiter
from .membership_service import MembershipSyncService
from .payment_service import PaymentReconciliationService
from .schemas import (
    MembershipCheckResponse,
    MembershipSyncRequest,
    MembershipSyncResponse,
    PaymentStatusResponse,
    SyncPaymentRequest,
    SyncPaymentResponse,
)
from .stripe_service import get_stripe_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Billing"])

rate_limit_payment_sync = create_rate_limiter(
    limit=RECONCILE_RATE_LIMIT_PER_MINUTE, window_seconds=60, key_prefix="sync_payment"
)
rate_limit_payment_status = create_rate_limiter(
    limit=RECONCILE_RATE_LIMIT_PER_MINUTE, window_seconds=60, key_prefix="payment_status"
)
rate_limit_membership = create_rate_limiter(
    limit=RECONCILE_RATE_LIMIT_PER_MINUTE, window_seconds=60, key_prefix="membership_sync"
)


def get_payment_service(
    db: Session = Depends(get_db), provider=Depends(get_stripe_service)
) -> PaymentReconciliationService:
    """Dependency injection for PaymentReconciliationService"""
    return PaymentReconciliationService(db, provider)


def get_membership_service(
    db: Session = Depends(get_db), provider=Depends(get_stripe_service)
) -> MembershipSyncService:
    """Dependency injection for MembershipSyncService"""
    return MembershipSyncService(db, provider)


# ============================================================================
# APPOINTMENT PAYMENTS
# ============================================================================


@router.post("/appointments/{appointment_id}/sync-payment", response_model=SyncPaymentResponse)
async def sync_appointment_payment(
    appointment_id: int,
    body: Optional[SyncPaymentRequest] = None,
    caller: Caller = Depends(get_caller),
    service: PaymentReconciliationService = Depends(get_payment_service),
    _: None = Depends(rate_limit_payment_sync),
):
    """
    Reconcile the Stripe charge for an appointment into a completed payment.

    Returns ``success=false`` with no payment while Stripe has nothing yet;
    clients keep polling on that answer.
    """
    charge_hint = body.payment_intent_id if body else None
    result = await service.reconcile_payment(appointment_id, caller, charge_hint=charge_hint)
    return {"success": result.success, "payment": result.payment, "message": result.message}


@router.get("/appointments/{appointment_id}/payment-status", response_model=PaymentStatusResponse)
async def get_appointment_payment_status(
    appointment_id: int,
    caller: Caller = Depends(get_caller),
    service: PaymentReconciliationService = Depends(get_payment_service),
    _: None = Depends(rate_limit_payment_status),
):
    """Local payment state for an appointment (no Stripe calls)"""
    return service.get_payment_status(appointment_id, caller)


# ============================================================================
# MEMBERSHIPS
# ============================================================================


@router.post("/membership/sync", response_model=MembershipSyncResponse)
async def sync_membership(
    body: MembershipSyncRequest,
    caller: Caller = Depends(get_caller),
    service: MembershipSyncService = Depends(get_membership_service),
    _: None = Depends(rate_limit_membership),
):
    """Create or activate the membership backing a Stripe subscription"""
    result = await service.sync_membership(body.subscription_id, caller)
    return {
        "success": result.success,
        "membership_id": result.membership_id,
        "membership": result.membership,
        "message": result.message,
    }


@router.get("/membership/check", response_model=MembershipCheckResponse)
async def check_membership(
    subscription_id: str = Query(..., min_length=1),
    caller: Caller = Depends(get_caller),
    service: MembershipSyncService = Depends(get_membership_service),
    _: None = Depends(rate_limit_membership),
):
    """Whether the membership for a subscription is active yet"""
    check = await service.check_membership(subscription_id, caller)
    return asdict(check)
