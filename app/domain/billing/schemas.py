"""Billing domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class SyncPaymentRequest(BaseModel):
    """Schema for reconciling an appointment payment"""

    payment_intent_id: Optional[str] = None  # charge the client just confirmed, if known

    @field_validator("payment_intent_id")
    @classmethod
    def validate_payment_intent_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        return v or None


class PaymentOut(BaseModel):
    id: int
    appointment_id: int
    amount: float
    currency: str
    status: str
    payment_method: Optional[str] = None
    stripe_payment_id: Optional[str] = None
    hours_worked: Optional[float] = None
    mileage: Optional[float] = None
    specialist_pay: Optional[float] = None
    mileage_pay: Optional[float] = None
    company_revenue: Optional[float] = None
    tax_amount: Optional[float] = None
    base_service_amount: Optional[float] = None
    travel_fee_amount: Optional[float] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SyncPaymentResponse(BaseModel):
    success: bool
    payment: Optional[PaymentOut] = None
    message: str


class PaymentStatusResponse(BaseModel):
    """Schema for the appointment payment status view"""

    appointment_id: int
    appointment_status: str
    completed_payment: Optional[PaymentOut] = None
    payments: list[PaymentOut]
    has_any_payment: bool


class MembershipSyncRequest(BaseModel):
    subscription_id: str

    @field_validator("subscription_id")
    @classmethod
    def validate_subscription_id(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("subscription_id is required")
        return v


class MembershipOut(BaseModel):
    id: int
    user_id: int
    membership_plan_id: int
    status: str
    stripe_subscription_id: str
    started_at: Optional[datetime] = None
    next_billing_date: Optional[date] = None

    class Config:
        from_attributes = True


class MembershipSyncResponse(BaseModel):
    success: bool
    membership_id: Optional[int] = None
    membership: Optional[MembershipOut] = None
    message: str


class MembershipCheckResponse(BaseModel):
    membership_active: bool
    membership_id: Optional[int] = None
    status: Optional[str] = None
    subscription_active: Optional[bool] = None
    message: str
