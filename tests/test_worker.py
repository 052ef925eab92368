import pytest
from arq import Retry

from app.domain.billing.polling import RefreshGuard, RetryPolicy
from app.domain.billing.stripe_service import ExternalInvoice
from app.models import Membership, Payment
from app.worker import reconcile_payment_task, sync_membership_task

from .factories import make_charge, make_subscription


@pytest.fixture
def senior(make_user):
    return make_user(stripe_customer_id="cus_1")


@pytest.fixture
def ctx(session_factory, provider):
    return {
        "session_factory": session_factory,
        "provider": provider,
        "retry_policy": RetryPolicy(max_attempts=3, interval_seconds=1.0),
        "membership_refresh_guard": RefreshGuard(30),
        "job_try": 1,
    }


class TestReconcilePaymentTask:
    async def test_records_payment(self, ctx, db, provider, make_appointment, senior):
        appointment = make_appointment(senior)
        provider.add_charge(make_charge(appointment.id))

        result = await reconcile_payment_task(ctx, appointment.id, charge_hint="pi_1")

        assert result["success"] is True
        assert result["message"] == "Payment synced successfully"
        assert db.query(Payment).count() == 1

    async def test_retries_while_nothing_in_stripe(self, ctx, make_appointment, senior):
        appointment = make_appointment(senior)

        with pytest.raises(Retry):
            await reconcile_payment_task(ctx, appointment.id)

    async def test_retries_on_provider_outage(self, ctx, provider, make_appointment, senior):
        appointment = make_appointment(senior)
        provider.failing = {"retrieve_charge", "list_charges:customer", "list_charges:recent"}

        with pytest.raises(Retry):
            await reconcile_payment_task(ctx, appointment.id, charge_hint="pi_1")

    async def test_gives_up_after_last_attempt(self, ctx, make_appointment, senior):
        appointment = make_appointment(senior)
        ctx["job_try"] = 3

        result = await reconcile_payment_task(ctx, appointment.id)

        assert result == {"success": False, "message": "Reconciliation still pending", "attempts": 3}


class TestSyncMembershipTask:
    @pytest.fixture
    def plan(self, make_plan):
        return make_plan()

    async def test_syncs_and_marks_guard(self, ctx, db, provider, senior, plan):
        provider.subscriptions["sub_1"] = make_subscription(user_id=senior.id, plan_id=plan.id)

        result = await sync_membership_task(ctx, "sub_1", senior.id)

        assert result["success"] is True
        assert result["status"] == "active"
        assert db.query(Membership).count() == 1
        assert not ctx["membership_refresh_guard"].should_refresh("sub_1")

    async def test_recent_sync_is_skipped(self, ctx, provider, senior):
        ctx["membership_refresh_guard"].mark("sub_1")

        result = await sync_membership_task(ctx, "sub_1", senior.id)

        assert result["skipped"] is True
        assert provider.calls == []

    async def test_retries_while_subscription_not_ready(self, ctx, provider, senior, plan):
        provider.subscriptions["sub_1"] = make_subscription(status="canceled", user_id=senior.id, plan_id=plan.id)

        with pytest.raises(Retry):
            await sync_membership_task(ctx, "sub_1", senior.id)

    async def test_pending_membership_is_retried(self, ctx, db, provider, senior, plan):
        provider.subscriptions["sub_1"] = make_subscription(
            status="incomplete", user_id=senior.id, plan_id=plan.id, latest_invoice="in_1"
        )
        provider.invoices["in_1"] = ExternalInvoice(id="in_1", status="open", payment_intent_status="processing")

        with pytest.raises(Retry):
            await sync_membership_task(ctx, "sub_1", senior.id)
        assert db.query(Membership).one().status == "pending"
        assert ctx["membership_refresh_guard"].should_refresh("sub_1")

    async def test_gives_up_after_last_attempt(self, ctx, senior):
        ctx["job_try"] = 3

        result = await sync_membership_task(ctx, "sub_missing", senior.id)

        assert result["success"] is False
        assert result["attempts"] == 3
