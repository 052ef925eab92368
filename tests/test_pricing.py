import pytest

from app.domain.pricing.calculator import (
    PricingConfig,
    calculate_standard_price,
    calculate_tax,
    calculate_visit_price,
)
from app.domain.pricing.plans import (
    CANONICAL_PLANS,
    PlanTerms,
    get_canonical_plan,
    plan_terms_for,
)
from app.models import MembershipPlan

MEMBER_75 = PlanTerms(
    plan_type="family_care_plus",
    member_hourly_rate=75.0,
    included_visit_minutes=30,
    included_visit_type="remote",
)


class TestStandardPrice:
    @pytest.mark.parametrize(
        "minutes,expected",
        [(0, 0), (-15, 0), (1, 95), (30, 95), (60, 95), (61, 140), (90, 140), (91, 185), (120, 185), (150, 230)],
    )
    def test_first_hour_then_half_hour_blocks(self, minutes, expected):
        assert calculate_standard_price(minutes) == expected

    def test_non_decreasing_in_duration(self):
        prices = [calculate_standard_price(m) for m in range(0, 400)]
        assert all(a <= b for a, b in zip(prices, prices[1:]))

    def test_custom_rates(self):
        config = PricingConfig(first_hour_rate=100, additional_half_hour_rate=50, tax_rate=0.05)
        assert calculate_standard_price(90, config) == 150


class TestVisitPrice:
    def test_no_membership_scenario(self):
        breakdown = calculate_visit_price(90, location_type="remote", travel_distance_miles=32)

        assert breakdown.standard_price == 140.00
        assert breakdown.service_price == 140.00
        assert breakdown.membership_discount == 0
        assert breakdown.travel_fee == 12.00
        assert breakdown.subtotal == 152.00
        assert breakdown.tax == 10.64
        assert breakdown.total == 162.64

    def test_member_scenario(self):
        breakdown = calculate_visit_price(90, location_type="remote", plan=MEMBER_75, travel_distance_miles=32)

        assert breakdown.free_minutes_applied == 30
        assert breakdown.billable_minutes == 60
        assert breakdown.service_price == 75.00
        assert breakdown.membership_discount == 65.00
        assert breakdown.subtotal == 87.00
        assert breakdown.tax == 6.09
        assert breakdown.total == 93.09

    def test_fully_covered_by_included_minutes(self):
        breakdown = calculate_visit_price(30, location_type="remote", plan=MEMBER_75)

        assert breakdown.service_price == 0
        assert breakdown.membership_discount == breakdown.standard_price == 95
        assert breakdown.total == 0

    def test_remote_only_minutes_do_not_cover_in_person(self):
        breakdown = calculate_visit_price(60, location_type="in-person", plan=MEMBER_75)

        assert breakdown.free_minutes_applied == 0
        assert breakdown.service_price == 75.00
        assert breakdown.membership_discount == 20.00

    def test_negative_duration_is_free(self):
        breakdown = calculate_visit_price(-30)
        assert breakdown.total == 0
        assert breakdown.billable_minutes == 0

    def test_explicit_travel_fee_wins(self):
        breakdown = calculate_visit_price(60, travel_distance_miles=100, travel_fee=0)
        assert breakdown.travel_fee == 0
        assert breakdown.total == pytest.approx(95 + calculate_tax(95))

    def test_unknown_plan_type_prices_as_no_plan(self):
        plan = MembershipPlan(plan_type="platinum", member_hourly_rate=10, included_visit_minutes=600)
        assert calculate_visit_price(90, plan=plan) == calculate_visit_price(90)

    def test_plan_without_member_rate_bills_standard_outside_free_minutes(self):
        family = CANONICAL_PLANS["family"].terms

        remote = calculate_visit_price(120, location_type="remote", plan=family)
        in_person = calculate_visit_price(90, location_type="in-person", plan=family)

        assert remote.service_price == 0
        assert in_person.service_price == 140
        assert in_person.membership_discount == 0

    def test_to_dict_has_every_field(self):
        data = calculate_visit_price(60).to_dict()
        assert set(data) == {
            "standard_price",
            "service_price",
            "membership_discount",
            "free_minutes_applied",
            "billable_minutes",
            "travel_fee",
            "subtotal",
            "tax",
            "total",
        }


class TestPlans:
    def test_catalog_rates(self):
        assert get_canonical_plan("comfort").member_hourly_rate == 80
        assert get_canonical_plan("family_care_plus").included_visit_minutes == 60
        assert get_canonical_plan("family_care_plus").max_covered_people == 3
        assert get_canonical_plan("nope") is None
        assert get_canonical_plan(None) is None

    def test_row_values_override_catalog(self):
        row = MembershipPlan(
            plan_type="comfort", member_hourly_rate=70, included_visit_minutes=45, included_visit_type=None
        )
        terms = plan_terms_for(row)

        assert terms.member_hourly_rate == 70
        assert terms.included_visit_minutes == 45
        assert terms.included_visit_type == "remote"

    def test_terms_pass_through(self):
        assert plan_terms_for(MEMBER_75) is MEMBER_75
        assert plan_terms_for(None) is None
