"""Pricing router - quotes, travel fees and the membership plan catalog"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...config import GOOGLE_MAPS_BACKEND_KEY, HQ_COORDINATES
from ...database import get_db
from ...models import User
from ..billing.repository import BillingRepository
from .calculator import calculate_visit_price
from .distance import DistanceLookupError, format_destination, get_driving_distance_miles
from .plans import CANONICAL_PLANS, get_canonical_plan, plan_terms_for
from .schemas import PlanResponse, QuoteRequest, QuoteResponse, TravelRequest, TravelResponse
from .travel import DEFAULT_TRAVEL_CONFIG, calculate_travel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pricing"])


def resolve_quote_plan(db: Session, user: User, plan_type):
    """Explicit plan type first, else the user's active membership plan"""
    if plan_type:
        plan = BillingRepository.get_plan_by_type(db, plan_type)
        if plan is not None:
            return plan
        canonical = get_canonical_plan(plan_type)
        return canonical.terms if canonical else None

    membership = BillingRepository.get_active_membership(db, user.id)
    return membership.plan if membership else None


@router.get("/pricing/plans", response_model=list[PlanResponse])
async def list_plans():
    """Canonical membership plan catalog"""
    return [asdict(plan) for plan in CANONICAL_PLANS.values()]


@router.post("/pricing/quote", response_model=QuoteResponse)
async def quote_visit(
    body: QuoteRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Price breakdown for a visit, including membership discount, travel and tax"""
    plan = resolve_quote_plan(db, user, body.plan_type)
    breakdown = calculate_visit_price(
        body.duration_minutes,
        location_type=body.location_type,
        plan=plan,
        travel_distance_miles=body.travel_distance_miles,
    )
    terms = plan_terms_for(plan)
    return {**breakdown.to_dict(), "plan_type": terms.plan_type if terms else None}


@router.post("/travel/calculate", response_model=TravelResponse)
async def calculate_travel_from_hq(
    body: TravelRequest,
    user: User = Depends(get_current_user),
):
    """Driving distance from headquarters and the resulting travel fee split"""
    destination = format_destination(body.address, body.city, body.state, body.zip_code)
    base = {
        "included_miles": DEFAULT_TRAVEL_CONFIG.included_miles,
        "origin": HQ_COORDINATES,
        "destination": destination,
    }

    if not GOOGLE_MAPS_BACKEND_KEY:
        logger.warning("GOOGLE_MAPS_BACKEND_KEY not set; travel distance unavailable")
        return {
            **base,
            "distance_miles": None,
            "error": "Google Maps API key not configured. Please configure GOOGLE_MAPS_BACKEND_KEY in environment variables.",
        }

    try:
        miles = await get_driving_distance_miles(destination, api_key=GOOGLE_MAPS_BACKEND_KEY)
    except DistanceLookupError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    travel = calculate_travel(miles)
    return {**base, **asdict(travel)}
