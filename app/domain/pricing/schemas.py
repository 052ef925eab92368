"""Pricing domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, field_validator

LOCATION_TYPES = ("remote", "in-person")


class QuoteRequest(BaseModel):
    """Schema for pricing a visit"""

    duration_minutes: int
    location_type: str = "remote"
    plan_type: Optional[str] = None  # defaults to the caller's active membership
    travel_distance_miles: Optional[float] = None

    @field_validator("location_type")
    @classmethod
    def validate_location_type(cls, v: str) -> str:
        if v not in LOCATION_TYPES:
            raise ValueError("location_type must be 'remote' or 'in-person'")
        return v

    @field_validator("travel_distance_miles")
    @classmethod
    def validate_distance(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("travel_distance_miles cannot be negative")
        return v


class QuoteResponse(BaseModel):
    standard_price: float
    service_price: float
    membership_discount: float
    free_minutes_applied: int
    billable_minutes: int
    travel_fee: float
    subtotal: float
    tax: float
    total: float
    plan_type: Optional[str] = None


class TravelRequest(BaseModel):
    """Schema for calculating travel from headquarters"""

    address: str
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Address is required")
        return v


class TravelResponse(BaseModel):
    distance_miles: Optional[float] = None
    extra_miles: Optional[float] = None
    travel_fee: Optional[float] = None
    specialist_reimbursement: Optional[float] = None
    company_retention: Optional[float] = None
    included_miles: float
    origin: str
    destination: str
    error: Optional[str] = None


class PlanResponse(BaseModel):
    plan_type: str
    name: str
    monthly_price: float
    member_hourly_rate: float
    included_visit_minutes: int
    included_visit_type: str
    service_category: str
    max_covered_people: int

