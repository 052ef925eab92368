"""Visit pricing - deterministic price breakdown for an appointment"""

import math
from dataclasses import asdict, dataclass
from typing import Optional

from ...config import ADDITIONAL_HALF_HOUR_RATE, FIRST_HOUR_RATE, TAX_RATE
from .plans import plan_terms_for
from .travel import calculate_travel_fee

BLOCK_MINUTES = 30
FIRST_BLOCK_MINUTES = 60


@dataclass(frozen=True)
class PricingConfig:
    first_hour_rate: float = FIRST_HOUR_RATE
    additional_half_hour_rate: float = ADDITIONAL_HALF_HOUR_RATE
    tax_rate: float = TAX_RATE


DEFAULT_PRICING_CONFIG = PricingConfig()


@dataclass(frozen=True)
class PriceBreakdown:
    standard_price: float
    service_price: float
    membership_discount: float
    free_minutes_applied: int
    billable_minutes: int
    travel_fee: float
    subtotal: float
    tax: float
    total: float

    def to_dict(self) -> dict:
        return asdict(self)


def _money(value: float) -> float:
    return round(value, 2)


def calculate_standard_price(
    duration_minutes, config: PricingConfig = DEFAULT_PRICING_CONFIG
) -> float:
    """
    Non-member price: the first hour at the first-hour rate, then every
    started 30-minute block at the half-hour rate (minute 61 opens a block).
    """
    duration = math.ceil(duration_minutes or 0)
    if duration <= 0:
        return 0.0
    if duration <= FIRST_BLOCK_MINUTES:
        return config.first_hour_rate
    blocks = math.ceil((duration - FIRST_BLOCK_MINUTES) / BLOCK_MINUTES)
    return config.first_hour_rate + blocks * config.additional_half_hour_rate


def calculate_visit_price(
    duration_minutes,
    location_type: str = "remote",
    plan=None,
    travel_distance_miles: Optional[float] = None,
    travel_fee: Optional[float] = None,
    config: PricingConfig = DEFAULT_PRICING_CONFIG,
) -> PriceBreakdown:
    """
    Price a visit.

    ``plan`` may be a ``PlanTerms``, a ``MembershipPlan`` row or None. Members
    get their included minutes (if the plan covers this location type) for
    free and the rest prorated at the member hourly rate. ``travel_fee`` wins
    over ``travel_distance_miles`` when both are given.
    """
    duration = max(math.ceil(duration_minutes or 0), 0)
    terms = plan_terms_for(plan)
    standard_price = calculate_standard_price(duration, config)

    included_minutes = terms.included_minutes_for(location_type) if terms else 0
    free_minutes = min(duration, included_minutes)
    billable_minutes = max(duration - free_minutes, 0)

    if terms is None:
        service_price = standard_price
    elif terms.member_hourly_rate > 0:
        service_price = (billable_minutes / 60) * terms.member_hourly_rate
    else:
        # Plans without a member rate bill anything outside the free minutes at standard rates
        service_price = calculate_standard_price(billable_minutes, config)
    membership_discount = max(standard_price - service_price, 0) if terms else 0.0

    if travel_fee is None:
        travel_fee = calculate_travel_fee(travel_distance_miles)

    service_price = _money(service_price)
    travel_fee = _money(max(float(travel_fee), 0))
    subtotal = _money(service_price + travel_fee)
    tax = calculate_tax(subtotal, config)
    total = _money(max(subtotal + tax, 0))

    return PriceBreakdown(
        standard_price=_money(standard_price),
        service_price=service_price,
        membership_discount=_money(membership_discount),
        free_minutes_applied=free_minutes,
        billable_minutes=billable_minutes,
        travel_fee=travel_fee,
        subtotal=subtotal,
        tax=tax,
        total=total,
    )


def calculate_tax(amount: float, config: PricingConfig = DEFAULT_PRICING_CONFIG) -> float:
    return _money(max(amount, 0) * config.tax_rate)
