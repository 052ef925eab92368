"""Membership plan catalog - canonical plan terms used for pricing"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PlanTerms:
    """Pricing-relevant terms of a membership plan"""

    plan_type: str
    member_hourly_rate: float
    included_visit_minutes: int = 0
    included_visit_type: str = "any"  # remote | in-person | any

    def included_minutes_for(self, location_type: str) -> int:
        if self.included_visit_type == "remote" and location_type == "in-person":
            return 0
        if self.included_visit_type == "in-person" and location_type == "remote":
            return 0
        return max(int(self.included_visit_minutes or 0), 0)


@dataclass(frozen=True)
class CanonicalPlan:
    plan_type: str
    name: str
    monthly_price: float
    member_hourly_rate: float
    included_visit_minutes: int
    included_visit_type: str
    service_category: str  # in-person | online-only
    max_covered_people: int = 1

    @property
    def terms(self) -> PlanTerms:
        return PlanTerms(
            plan_type=self.plan_type,
            member_hourly_rate=self.member_hourly_rate,
            included_visit_minutes=self.included_visit_minutes,
            included_visit_type=self.included_visit_type,
        )


CONNECT_HOURLY_RATE = 85.0
COMFORT_HOURLY_RATE = 80.0
FAMILY_CARE_PLUS_HOURLY_RATE = 75.0

CANONICAL_PLANS = {
    # In-person plans
    "connect": CanonicalPlan("connect", "Connect", 25, CONNECT_HOURLY_RATE, 0, "any", "in-person"),
    "comfort": CanonicalPlan("comfort", "Comfort", 59, COMFORT_HOURLY_RATE, 30, "remote", "in-person"),
    "family_care_plus": CanonicalPlan(
        "family_care_plus", "Family Care+", 99, FAMILY_CARE_PLUS_HOURLY_RATE, 60, "any", "in-person", 3
    ),
    # Online-only plans
    "starter": CanonicalPlan("starter", "Starter", 39, CONNECT_HOURLY_RATE, 0, "remote", "online-only"),
    "essential": CanonicalPlan("essential", "Essentials", 69, COMFORT_HOURLY_RATE, 0, "remote", "online-only"),
    # Unlimited remote sessions; no member rate, so in-person visits bill at standard rates
    "family": CanonicalPlan("family", "Family+", 119, 0, 999999, "remote", "online-only"),
}

ALLOWED_PLAN_TYPES = tuple(CANONICAL_PLANS)


def get_canonical_plan(plan_type: Optional[str]) -> Optional[CanonicalPlan]:
    if not plan_type:
        return None
    return CANONICAL_PLANS.get(plan_type)


def plan_terms_for(plan) -> Optional[PlanTerms]:
    """
    Resolve pricing terms for a plan row (or anything with ``plan_type``).

    The stored row is authoritative for rate and included minutes; the
    catalog supplies the included-visit type when the row leaves it blank.
    Unknown plan types price as "no plan".
    """
    if plan is None:
        return None
    if isinstance(plan, PlanTerms):
        return plan

    canonical = get_canonical_plan(getattr(plan, "plan_type", None))
    if canonical is None:
        return None

    rate = getattr(plan, "member_hourly_rate", None)
    minutes = getattr(plan, "included_visit_minutes", None)
    visit_type = getattr(plan, "included_visit_type", None)
    return PlanTerms(
        plan_type=canonical.plan_type,
        member_hourly_rate=canonical.member_hourly_rate if rate is None else float(rate),
        included_visit_minutes=canonical.included_visit_minutes if minutes is None else int(minutes),
        included_visit_type=visit_type or canonical.included_visit_type,
    )
