"""
Travel fee calculation.

The first TRAVEL_INCLUDED_MILES of round-trip driving are free. Beyond that
the client pays the client rate per mile and the specialist is reimbursed at
the (lower) specialist rate; the difference is company retention.
"""

from dataclasses import dataclass

from ...config import (
    TRAVEL_CLIENT_RATE_PER_MILE,
    TRAVEL_INCLUDED_MILES,
    TRAVEL_SPECIALIST_RATE_PER_MILE,
)


@dataclass(frozen=True)
class TravelConfig:
    included_miles: float = TRAVEL_INCLUDED_MILES
    client_rate_per_mile: float = TRAVEL_CLIENT_RATE_PER_MILE
    specialist_rate_per_mile: float = TRAVEL_SPECIALIST_RATE_PER_MILE


DEFAULT_TRAVEL_CONFIG = TravelConfig()


@dataclass(frozen=True)
class TravelBreakdown:
    distance_miles: float
    extra_miles: float
    travel_fee: float
    specialist_reimbursement: float
    company_retention: float


def _extra_miles(distance_miles, config: TravelConfig) -> float:
    distance = float(distance_miles or 0)
    if distance <= config.included_miles:
        return 0.0
    return distance - config.included_miles


def calculate_travel_fee(distance_miles, config: TravelConfig = DEFAULT_TRAVEL_CONFIG) -> float:
    """Client-facing travel fee (0 within the included miles)"""
    return _extra_miles(distance_miles, config) * config.client_rate_per_mile


def calculate_specialist_reimbursement(
    distance_miles, config: TravelConfig = DEFAULT_TRAVEL_CONFIG
) -> float:
    """Specialist mileage reimbursement (0 within the included miles)"""
    return _extra_miles(distance_miles, config) * config.specialist_rate_per_mile


def calculate_travel(distance_miles, config: TravelConfig = DEFAULT_TRAVEL_CONFIG) -> TravelBreakdown:
    fee = round(calculate_travel_fee(distance_miles, config), 2)
    reimbursement = round(calculate_specialist_reimbursement(distance_miles, config), 2)
    return TravelBreakdown(
        distance_miles=round(float(distance_miles or 0), 2),
        extra_miles=round(_extra_miles(distance_miles, config), 2),
        travel_fee=fee,
        specialist_reimbursement=reimbursement,
        company_retention=round(fee - reimbursement, 2),
    )
