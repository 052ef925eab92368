from datetime import date

import pytest

from app.auth import Caller
from app.domain.billing.errors import Forbidden, InvalidState, SubscriptionNotReady
from app.domain.billing.membership_service import MembershipSyncService
from app.domain.billing.repository import BillingRepository
from app.domain.billing.stripe_service import ExternalInvoice
from app.models import Membership, SeniorProfile

from .factories import make_subscription


@pytest.fixture
def senior(make_user):
    return make_user()


@pytest.fixture
def plan(make_plan):
    return make_plan()


@pytest.fixture
def service(db, provider):
    return MembershipSyncService(db, provider)


@pytest.fixture
def subscribe(provider, senior, plan):
    def _subscribe(subscription_id="sub_1", **kwargs):
        kwargs.setdefault("user_id", senior.id)
        kwargs.setdefault("plan_id", plan.id)
        subscription = make_subscription(subscription_id, **kwargs)
        provider.subscriptions[subscription.id] = subscription
        return subscription

    return _subscribe


def _memberships(db):
    return db.query(Membership).all()


async def test_creates_active_membership_and_links_profile(db, service, subscribe, senior, plan):
    subscribe()

    result = await service.sync_membership("sub_1", Caller.for_user(senior))

    assert result.success and result.created
    membership = result.membership
    assert membership.status == "active"
    assert membership.user_id == senior.id
    assert membership.membership_plan_id == plan.id
    assert membership.next_billing_date == date(2026, 1, 1)
    assert membership.started_at is not None
    profile = db.query(SeniorProfile).filter(SeniorProfile.user_id == senior.id).one()
    assert profile.membership_id == membership.id


async def test_sync_twice_keeps_one_row(db, service, subscribe, senior):
    subscribe()

    first = await service.sync_membership("sub_1", Caller.for_user(senior))
    second = await service.sync_membership("sub_1", Caller.for_user(senior))

    assert second.membership_id == first.membership_id
    assert second.message == "Membership already active"
    assert len(_memberships(db)) == 1


@pytest.mark.parametrize("status", ["active", "trialing", "past_due"])
async def test_billable_statuses_map_to_active(service, subscribe, senior, status):
    subscribe(status=status)

    result = await service.sync_membership("sub_1", Caller.for_user(senior))

    assert result.membership.status == "active"


@pytest.mark.parametrize("status", ["canceled", "unpaid", "incomplete_expired"])
async def test_other_statuses_are_not_ready(db, service, subscribe, senior, status):
    subscribe(status=status)

    with pytest.raises(SubscriptionNotReady):
        await service.sync_membership("sub_1", Caller.for_user(senior))
    assert _memberships(db) == []


async def test_unknown_subscription_is_not_ready(service, senior):
    with pytest.raises(SubscriptionNotReady):
        await service.sync_membership("sub_missing", Caller.for_user(senior))


class TestIncompleteSubscriptions:
    async def test_paid_invoice_activates(self, provider, service, subscribe, senior):
        subscribe(status="incomplete", latest_invoice="in_1")
        provider.invoices["in_1"] = ExternalInvoice(id="in_1", status="paid", paid=True)

        result = await service.sync_membership("sub_1", Caller.for_user(senior))

        assert result.membership.status == "active"
        assert ("retrieve_invoice", "in_1", ("payment_intent",)) in provider.calls

    async def test_succeeded_payment_intent_activates(self, provider, service, subscribe, senior):
        subscribe(status="incomplete", latest_invoice="in_1")
        provider.invoices["in_1"] = ExternalInvoice(id="in_1", status="open", payment_intent_status="succeeded")

        result = await service.sync_membership("sub_1", Caller.for_user(senior))

        assert result.membership.status == "active"

    async def test_unpaid_invoice_stays_pending_then_converges(self, db, provider, service, subscribe, senior):
        subscribe(status="incomplete", latest_invoice="in_1")
        provider.invoices["in_1"] = ExternalInvoice(id="in_1", status="open", payment_intent_status="processing")

        pending = await service.sync_membership("sub_1", Caller.for_user(senior))
        assert pending.membership.status == "pending"
        assert pending.membership.started_at is None

        provider.invoices["in_1"] = ExternalInvoice(id="in_1", status="paid", paid=True)
        activated = await service.sync_membership("sub_1", Caller.for_user(senior))

        assert activated.membership_id == pending.membership_id
        assert activated.membership.status == "active"
        assert activated.message == "Membership activated"
        assert len(_memberships(db)) == 1

    async def test_invoice_lookup_failure_is_optimistic(self, provider, service, subscribe, senior):
        subscribe(status="incomplete", latest_invoice="in_1")
        provider.failing = {"retrieve_invoice"}

        result = await service.sync_membership("sub_1", Caller.for_user(senior))

        assert result.membership.status == "active"

    async def test_missing_invoice_is_optimistic(self, service, subscribe, senior):
        subscribe(status="incomplete", latest_invoice=None)

        result = await service.sync_membership("sub_1", Caller.for_user(senior))

        assert result.membership.status == "active"


class TestOwnershipAndMetadata:
    async def test_other_user_is_forbidden(self, make_user, service, subscribe):
        subscribe()
        stranger = make_user()

        with pytest.raises(Forbidden):
            await service.sync_membership("sub_1", Caller.for_user(stranger))

    async def test_system_caller_acts_for_the_owner(self, service, subscribe, senior):
        subscribe()

        result = await service.sync_membership("sub_1", Caller.system())

        assert result.membership.user_id == senior.id

    @pytest.mark.parametrize("missing", ["user_id", "plan_id"])
    async def test_missing_metadata_is_invalid_state(self, service, subscribe, senior, missing):
        subscribe(**{missing: None})

        with pytest.raises(InvalidState):
            await service.sync_membership("sub_1", Caller.system())

    async def test_unknown_plan_is_invalid_state(self, service, subscribe, senior):
        subscribe(plan_id=9999)

        with pytest.raises(InvalidState):
            await service.sync_membership("sub_1", Caller.for_user(senior))


async def test_terminal_membership_is_left_unchanged(db, service, subscribe, senior, plan):
    subscribe()
    db.add(
        Membership(
            user_id=senior.id, membership_plan_id=plan.id, status="cancelled", stripe_subscription_id="sub_1"
        )
    )
    db.commit()

    result = await service.sync_membership("sub_1", Caller.for_user(senior))

    assert not result.success
    assert result.membership.status == "cancelled"


class RacingRepository(BillingRepository):
    """Misses the existing row on the first lookup, as if it was committed mid-sync"""

    def __init__(self):
        self.lookups = 0

    def get_membership_by_subscription(self, db, subscription_id, user_id=None):
        self.lookups += 1
        if self.lookups == 1:
            return None
        return super().get_membership_by_subscription(db, subscription_id, user_id)


async def test_lost_insert_race_returns_the_winner(db, service, subscribe, senior, plan):
    subscribe()
    winner = Membership(user_id=senior.id, membership_plan_id=plan.id, status="active", stripe_subscription_id="sub_1")
    db.add(winner)
    db.commit()
    service.repo = RacingRepository()

    result = await service.sync_membership("sub_1", Caller.for_user(senior))

    assert result.success and not result.created
    assert result.membership_id == winner.id
    assert len(_memberships(db)) == 1


async def test_second_active_membership_for_user_is_rejected(db, service, subscribe, senior, plan):
    db.add(Membership(user_id=senior.id, membership_plan_id=plan.id, status="active", stripe_subscription_id="sub_old"))
    db.commit()
    subscribe("sub_new")

    with pytest.raises(InvalidState):
        await service.sync_membership("sub_new", Caller.for_user(senior))
    assert len(_memberships(db)) == 1


class TestMembershipCheck:
    async def test_local_active_membership(self, service, subscribe, senior):
        subscribe()
        synced = await service.sync_membership("sub_1", Caller.for_user(senior))

        check = await service.check_membership("sub_1", Caller.for_user(senior))

        assert check.membership_active
        assert check.membership_id == synced.membership_id

    async def test_provider_active_but_not_synced(self, service, subscribe, senior):
        subscribe()

        check = await service.check_membership("sub_1", Caller.for_user(senior))

        assert not check.membership_active
        assert check.subscription_active
        assert check.message == "Payment processed, membership activation in progress..."

    async def test_provider_error_degrades_to_local_answer(self, provider, service, senior):
        provider.failing = {"retrieve_subscription"}

        check = await service.check_membership("sub_1", Caller.for_user(senior))

        assert not check.membership_active
        assert check.subscription_active is None

    async def test_someone_elses_membership(self, make_user, service, subscribe, senior):
        subscribe()
        await service.sync_membership("sub_1", Caller.for_user(senior))

        with pytest.raises(Forbidden):
            await service.check_membership("sub_1", Caller.for_user(make_user()))
