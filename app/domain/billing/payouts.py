"""Payout split for a captured appointment charge"""

import logging
from dataclasses import asdict, dataclass

from ...config import SPECIALIST_HOURLY_RATE, TAX_RATE
from ..pricing.travel import calculate_specialist_reimbursement
from .stripe_service import ExternalCharge

logger = logging.getLogger(__name__)

ROUNDING_TOLERANCE = 0.01


@dataclass(frozen=True)
class PayoutSplit:
    amount: float
    hours_worked: float
    mileage: float
    specialist_pay: float
    mileage_pay: float
    tax_amount: float
    base_service_amount: float
    travel_fee_amount: float
    company_revenue: float

    def to_dict(self) -> dict:
        return asdict(self)


def compute_payout(
    charge: ExternalCharge,
    appointment,
    specialist_hourly_rate: float = SPECIALIST_HOURLY_RATE,
    tax_rate: float = TAX_RATE,
) -> PayoutSplit:
    """
    Split ``charge.amount`` into specialist pay, mileage, tax and margin.

    Base, travel and tax amounts come from the charge metadata written when
    the payment intent was created; when absent they are derived from the
    appointment's stored prices.
    """
    amount = round(charge.amount, 2)
    hours_worked = (appointment.duration_minutes or 0) / 60
    mileage = float(appointment.travel_distance_miles or 0)
    specialist_pay = round(hours_worked * specialist_hourly_rate, 2)
    mileage_pay = round(calculate_specialist_reimbursement(mileage), 2)

    travel_fee_amount = charge.metadata_amount("travel_fee")
    if travel_fee_amount is None:
        travel_fee_amount = float(appointment.travel_fee or 0)

    base_service_amount = charge.metadata_amount("base_amount")
    if base_service_amount is None:
        if appointment.base_price is not None:
            base_service_amount = float(appointment.base_price)
        else:
            base_service_amount = amount / (1 + tax_rate) - travel_fee_amount

    tax_amount = charge.metadata_amount("tax_amount")
    if tax_amount is None:
        tax_amount = (base_service_amount + travel_fee_amount) * tax_rate

    base_service_amount = round(base_service_amount, 2)
    travel_fee_amount = round(travel_fee_amount, 2)
    tax_amount = round(tax_amount, 2)

    expected = base_service_amount + travel_fee_amount + tax_amount
    if abs(expected - amount) > ROUNDING_TOLERANCE:
        logger.warning(
            f"⚠️ Charge {charge.id} amount {amount:.2f} differs from base+travel+tax {expected:.2f}"
        )

    return PayoutSplit(
        amount=amount,
        hours_worked=round(hours_worked, 2),
        mileage=round(mileage, 2),
        specialist_pay=specialist_pay,
        mileage_pay=mileage_pay,
        tax_amount=tax_amount,
        base_service_amount=base_service_amount,
        travel_fee_amount=travel_fee_amount,
        company_revenue=round(amount - specialist_pay - mileage_pay - tax_amount, 2),
    )
