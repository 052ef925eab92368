"""Stripe service - charge, subscription and invoice lookups used by reconciliation"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import stripe

from ...config import STRIPE_SECRET_KEY
from .errors import ProviderError

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERNS = (
    "your-secret-key",
    "your_secret_key",
    "sk_test_your",
    "sk_live_your",
    "sk_test_here",
    "sk_live_here",
    "example",
    "placeholder",
)


def validate_stripe_key(key: Optional[str]) -> Optional[str]:
    """Return the trimmed key, or None if it is missing or obviously not a real key"""
    value = (key or "").strip()
    if not value:
        return None
    if any(pattern in value.lower() for pattern in PLACEHOLDER_PATTERNS):
        logger.error("❌ STRIPE_SECRET_KEY looks like a placeholder value")
        return None
    if not (value.startswith("sk_") or value.startswith("rk_")):
        logger.error(f"❌ Invalid Stripe secret key format (prefix: {value[:8]})")
        return None
    return value


def _as_dict(obj: Any) -> dict:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return {}


def _field(obj: Any, name: str, default=None):
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _ref_id(value: Any) -> Optional[str]:
    """Stripe references arrive either as an id string or as an expanded object"""
    if value is None or isinstance(value, str):
        return value
    return _field(value, "id")


def _cents_to_dollars(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return round(float(value) / 100, 2)
    except (TypeError, ValueError):
        return None


@dataclass
class ExternalCharge:
    id: str
    status: str
    amount: float  # dollars
    customer: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    currency: str = "usd"

    @property
    def appointment_id(self) -> Optional[str]:
        return self.metadata.get("appointment_id")

    def matches(self, appointment_id) -> bool:
        return self.appointment_id == str(appointment_id) and self.status == "succeeded"

    def metadata_amount(self, key: str) -> Optional[float]:
        """Metadata amounts are recorded in cents"""
        return _cents_to_dollars(self.metadata.get(key))

    @classmethod
    def from_stripe(cls, intent: Any) -> "ExternalCharge":
        cents = _field(intent, "amount_received") or _field(intent, "amount") or 0
        return cls(
            id=_field(intent, "id"),
            status=_field(intent, "status"),
            amount=round(cents / 100, 2),
            customer=_ref_id(_field(intent, "customer")),
            metadata=_as_dict(_field(intent, "metadata")),
            currency=_field(intent, "currency") or "usd",
        )


@dataclass
class ExternalSubscription:
    id: str
    status: str
    customer: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    current_period_end: Optional[int] = None  # unix seconds
    latest_invoice: Optional[str] = None

    @classmethod
    def from_stripe(cls, subscription: Any) -> "ExternalSubscription":
        period_end = _field(subscription, "current_period_end")
        if period_end is None:
            # Newer API versions report the period on the subscription items
            items = _field(_field(subscription, "items"), "data") or []
            if items:
                period_end = _field(items[0], "current_period_end")
        return cls(
            id=_field(subscription, "id"),
            status=_field(subscription, "status"),
            customer=_ref_id(_field(subscription, "customer")),
            metadata=_as_dict(_field(subscription, "metadata")),
            current_period_end=period_end,
            latest_invoice=_ref_id(_field(subscription, "latest_invoice")),
        )


@dataclass
class ExternalInvoice:
    id: str
    status: Optional[str]
    paid: Optional[bool] = None
    payment_intent_status: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.status == "paid" or bool(self.paid) or self.payment_intent_status == "succeeded"

    @classmethod
    def from_stripe(cls, invoice: Any) -> "ExternalInvoice":
        intent = _field(invoice, "payment_intent")
        return cls(
            id=_field(invoice, "id"),
            status=_field(invoice, "status"),
            paid=_field(invoice, "paid"),
            payment_intent_status=None if isinstance(intent, str) else _field(intent, "status"),
        )


def _is_missing(error: Exception) -> bool:
    return isinstance(error, stripe.InvalidRequestError) and getattr(error, "http_status", None) == 404


class StripeService:
    """Read-only Stripe operations needed by payment and membership reconciliation"""

    def __init__(self, api_key: Optional[str] = STRIPE_SECRET_KEY):
        self.api_key = validate_stripe_key(api_key)
        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY not set; reconciliation lookups will fail until configured")
        else:
            mode = "test" if "_test_" in self.api_key else "live"
            logger.info(f"Stripe client initialized ({mode} mode)")

    def _require_client(self):
        if not self.api_key:
            raise ProviderError("Stripe client not initialized")

    async def retrieve_charge(self, charge_id: str) -> Optional[ExternalCharge]:
        """Retrieve a payment intent; None if Stripe has no such object"""
        self._require_client()
        try:
            intent = await stripe.PaymentIntent.retrieve_async(charge_id, api_key=self.api_key)
            return ExternalCharge.from_stripe(intent)
        except stripe.StripeError as e:
            if _is_missing(e):
                logger.info(f"🔍 Payment intent {charge_id} not found")
                return None
            logger.error(f"Failed to retrieve payment intent {charge_id}: {e}")
            raise ProviderError(f"Failed to retrieve payment intent {charge_id}") from e

    async def list_charges(self, customer: Optional[str] = None, limit: int = 20) -> list[ExternalCharge]:
        """List recent payment intents, optionally scoped to one customer"""
        self._require_client()
        params = {"limit": limit}
        if customer:
            params["customer"] = customer
        try:
            page = await stripe.PaymentIntent.list_async(api_key=self.api_key, **params)
            return [ExternalCharge.from_stripe(intent) for intent in page.data]
        except stripe.StripeError as e:
            logger.error(f"Failed to list payment intents (customer={customer}): {e}")
            raise ProviderError("Failed to list payment intents") from e

    async def retrieve_subscription(self, subscription_id: str) -> Optional[ExternalSubscription]:
        self._require_client()
        try:
            subscription = await stripe.Subscription.retrieve_async(subscription_id, api_key=self.api_key)
            return ExternalSubscription.from_stripe(subscription)
        except stripe.StripeError as e:
            if _is_missing(e):
                logger.info(f"🔍 Subscription {subscription_id} not found")
                return None
            logger.error(f"Failed to retrieve subscription {subscription_id}: {e}")
            raise ProviderError(f"Failed to retrieve subscription {subscription_id}") from e

    async def retrieve_invoice(self, invoice_id: str, expand: Optional[list] = None) -> ExternalInvoice:
        self._require_client()
        try:
            invoice = await stripe.Invoice.retrieve_async(
                invoice_id, api_key=self.api_key, expand=expand or []
            )
            return ExternalInvoice.from_stripe(invoice)
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve invoice {invoice_id}: {e}")
            raise ProviderError(f"Failed to retrieve invoice {invoice_id}") from e

    def construct_event(self, payload: bytes, signature: str, secret: str):
        """Verify a webhook signature and parse the event"""
        return stripe.Webhook.construct_event(payload, signature, secret)


# Singleton instance
stripe_service = StripeService()


def get_stripe_service() -> StripeService:
    """Dependency injection for the Stripe service"""
    return stripe_service
