"""
Charge discovery - locate the Stripe charge that paid for an appointment.

Lookups are ordered strategies, each answering "the matching charge" or
None. ``first_match`` runs them in order and stops at the first hit. A
strategy that raises ``ProviderError`` is logged and skipped so the slower
fallbacks still get a chance.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ...config import STRIPE_CUSTOMER_SCAN_LIMIT, STRIPE_RECENT_SCAN_LIMIT
from .errors import ProviderError
from .stripe_service import ExternalCharge

logger = logging.getLogger(__name__)


class ChargeLookupStrategy:
    name = "base"

    @property
    def applicable(self) -> bool:
        return True

    async def find(self, appointment_id) -> Optional[ExternalCharge]:
        raise NotImplementedError


class DirectChargeLookup(ChargeLookupStrategy):
    """Retrieve the charge the client says it confirmed"""

    name = "direct"

    def __init__(self, provider, charge_id: Optional[str]):
        self.provider = provider
        self.charge_id = charge_id

    @property
    def applicable(self) -> bool:
        return bool(self.charge_id)

    async def find(self, appointment_id) -> Optional[ExternalCharge]:
        charge = await self.provider.retrieve_charge(self.charge_id)
        if charge and charge.matches(appointment_id):
            return charge
        if charge:
            logger.info(
                f"🔍 Charge {charge.id} does not match appointment {appointment_id} "
                f"(metadata={charge.appointment_id}, status={charge.status})"
            )
        return None


class CustomerChargeScan(ChargeLookupStrategy):
    """Scan the requester's recent charges"""

    name = "customer"

    def __init__(self, provider, customer_id: Optional[str], limit: int = STRIPE_CUSTOMER_SCAN_LIMIT):
        self.provider = provider
        self.customer_id = customer_id
        self.limit = limit

    @property
    def applicable(self) -> bool:
        return bool(self.customer_id)

    async def find(self, appointment_id) -> Optional[ExternalCharge]:
        charges = await self.provider.list_charges(customer=self.customer_id, limit=self.limit)
        return next((c for c in charges if c.matches(appointment_id)), None)


class RecentChargeScan(ChargeLookupStrategy):
    """Scan the account's most recent charges (Stripe does not index metadata)"""

    name = "recent"

    def __init__(self, provider, limit: int = STRIPE_RECENT_SCAN_LIMIT):
        self.provider = provider
        self.limit = limit

    async def find(self, appointment_id) -> Optional[ExternalCharge]:
        charges = await self.provider.list_charges(limit=self.limit)
        return next((c for c in charges if c.matches(appointment_id)), None)


@dataclass
class DiscoveryOutcome:
    charge: Optional[ExternalCharge] = None
    strategy: Optional[str] = None
    attempted: list = field(default_factory=list)
    errors: dict = field(default_factory=dict)

    @property
    def found(self) -> bool:
        return self.charge is not None

    @property
    def all_failed(self) -> bool:
        """Every strategy that ran raised a provider error"""
        return bool(self.attempted) and len(self.errors) == len(self.attempted)


async def first_match(strategies: Sequence[ChargeLookupStrategy], appointment_id) -> DiscoveryOutcome:
    outcome = DiscoveryOutcome()
    for strategy in strategies:
        if not strategy.applicable:
            continue
        outcome.attempted.append(strategy.name)
        try:
            charge = await strategy.find(appointment_id)
        except ProviderError as e:
            logger.warning(f"⚠️ Charge lookup '{strategy.name}' failed for appointment {appointment_id}: {e}")
            outcome.errors[strategy.name] = e
            continue
        if charge is not None:
            logger.info(f"✅ Found charge {charge.id} for appointment {appointment_id} via '{strategy.name}'")
            outcome.charge = charge
            outcome.strategy = strategy.name
            return outcome
    return outcome


def default_strategies(
    provider, charge_hint: Optional[str] = None, customer_id: Optional[str] = None
) -> list:
    return [
        DirectChargeLookup(provider, charge_hint),
        CustomerChargeScan(provider, customer_id),
        RecentChargeScan(provider),
    ]
