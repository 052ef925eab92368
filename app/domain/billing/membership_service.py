"""Membership sync - mirror a Stripe subscription into a local membership row"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...auth import Caller
from ...database import privileged
from ...models import Membership
from .errors import Forbidden, InvalidState, ProviderError, SubscriptionNotReady
from .repository import BillingRepository
from .stripe_service import ExternalSubscription, stripe_service

logger = logging.getLogger(__name__)

SYNCABLE_STATUSES = {"active", "trialing", "incomplete", "past_due"}
TERMINAL_STATUSES = {"cancelled", "expired"}


@dataclass
class SyncResult:
    success: bool
    membership: Optional[Membership]
    message: str
    created: bool = False

    @property
    def membership_id(self) -> Optional[int]:
        return self.membership.id if self.membership is not None else None


@dataclass
class MembershipCheck:
    membership_active: bool
    membership_id: Optional[int] = None
    status: Optional[str] = None
    subscription_active: Optional[bool] = None
    message: str = ""


def _period_end_date(period_end: Optional[int]) -> Optional[date]:
    if not period_end:
        return None
    return datetime.fromtimestamp(int(period_end), tz=timezone.utc).date()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MembershipSyncService:
    """Idempotent subscription -> membership upsert, keyed on (subscription id, user id)"""

    def __init__(self, db: Session, provider=None):
        self.db = db
        self.provider = provider or stripe_service
        self.repo = BillingRepository()

    # ============================================================================
    # Status resolution
    # ============================================================================

    async def resolve_status(self, subscription: ExternalSubscription) -> str:
        """
        Map a Stripe subscription status to a local membership status.

        ``active``, ``trialing`` and ``past_due`` (grace period) are active.
        ``incomplete`` looks at the latest invoice: paid means active, a
        confirmed unpaid invoice means pending, and an undeterminable payment
        state is treated as active because sync is only requested after the
        client already confirmed payment.
        """
        if subscription.status in ("active", "trialing", "past_due"):
            return "active"

        if subscription.status != "incomplete":
            raise SubscriptionNotReady(f"Subscription status is {subscription.status}")

        if not subscription.latest_invoice:
            logger.warning(f"⚠️ Incomplete subscription {subscription.id} has no invoice; activating optimistically")
            return "active"

        try:
            invoice = await self.provider.retrieve_invoice(subscription.latest_invoice, expand=["payment_intent"])
        except ProviderError as e:
            logger.warning(
                f"⚠️ Could not read invoice {subscription.latest_invoice} for {subscription.id}: {e}; "
                "activating optimistically"
            )
            return "active"

        if invoice.is_paid:
            return "active"
        logger.info(f"🔍 Invoice {invoice.id} for {subscription.id} not paid yet (status={invoice.status})")
        return "pending"

    # ============================================================================
    # Sync
    # ============================================================================

    @staticmethod
    def _owner_and_plan(subscription: ExternalSubscription) -> tuple:
        raw_user_id = subscription.metadata.get("user_id")
        raw_plan_id = subscription.metadata.get("membership_plan_id")
        if not raw_user_id or not raw_plan_id:
            raise InvalidState(f"Subscription {subscription.id} is missing user_id or membership_plan_id metadata")
        try:
            return int(raw_user_id), int(raw_plan_id)
        except (TypeError, ValueError) as e:
            raise InvalidState(f"Subscription {subscription.id} has malformed metadata") from e

    async def sync_membership(self, subscription_id: str, caller: Caller) -> SyncResult:
        subscription = await self.provider.retrieve_subscription(subscription_id)
        if subscription is None:
            raise SubscriptionNotReady(f"Subscription {subscription_id} not found")
        if subscription.status not in SYNCABLE_STATUSES:
            raise SubscriptionNotReady(f"Subscription status is {subscription.status}")

        owner_id, plan_id = self._owner_and_plan(subscription)
        if not caller.is_trusted and owner_id != caller.user_id:
            logger.warning(f"⚠️ User {caller.user_id} tried to sync subscription {subscription.id} owned by {owner_id}")
            raise Forbidden("Subscription does not belong to this user")

        plan = self.repo.get_plan(self.db, plan_id)
        if not plan:
            raise InvalidState(f"Membership plan {plan_id} does not exist")

        status = await self.resolve_status(subscription)
        next_billing_date = _period_end_date(subscription.current_period_end)

        existing = self.repo.get_membership_by_subscription(self.db, subscription.id, owner_id)
        if existing:
            return self._apply_to_existing(existing, status, next_billing_date)

        membership = Membership(
            user_id=owner_id,
            membership_plan_id=plan.id,
            status=status,
            stripe_subscription_id=subscription.id,
            stripe_customer_id=subscription.customer,
            started_at=_utcnow() if status == "active" else None,
            next_billing_date=next_billing_date,
            covered_user_ids=[owner_id],
        )
        try:
            with privileged(self.db):
                self.repo.add_membership(self.db, membership)
                if not self.repo.link_profile_membership(self.db, owner_id, membership.id):
                    logger.warning(f"⚠️ User {owner_id} has no senior profile to link membership {membership.id}")
                self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return self._recover_insert_race(subscription.id, owner_id)

        self.db.refresh(membership)
        logger.info(
            f"✅ Created {status} membership {membership.id} ({plan.plan_type}) for user {owner_id} "
            f"from subscription {subscription.id}"
        )
        return SyncResult(True, membership, "Membership created successfully", created=True)

    def _apply_to_existing(
        self, membership: Membership, status: str, next_billing_date: Optional[date]
    ) -> SyncResult:
        if membership.status == "active":
            logger.info(f"🔄 Membership {membership.id} already active")
            return SyncResult(True, membership, "Membership already active")

        if membership.status in TERMINAL_STATUSES:
            logger.info(f"Membership {membership.id} is {membership.status}; sync leaves it unchanged")
            return SyncResult(False, membership, f"Membership is {membership.status}")

        if status != "active":
            return SyncResult(True, membership, "Membership pending payment confirmation")

        try:
            with privileged(self.db):
                membership.status = "active"
                membership.started_at = membership.started_at or _utcnow()
                if next_billing_date:
                    membership.next_billing_date = next_billing_date
                self.db.flush()
                self.repo.link_profile_membership(self.db, membership.user_id, membership.id)
                self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise InvalidState("User already has an active membership") from e

        self.db.refresh(membership)
        logger.info(f"✅ Activated membership {membership.id} for user {membership.user_id}")
        return SyncResult(True, membership, "Membership activated")

    def _recover_insert_race(self, subscription_id: str, owner_id: int) -> SyncResult:
        winner = self.repo.get_membership_by_subscription(self.db, subscription_id, owner_id)
        if winner is None:
            if self.repo.get_membership_by_subscription(self.db, subscription_id):
                raise InvalidState(f"Subscription {subscription_id} is linked to another user")
            # Otherwise the one-active-per-user index fired
            raise InvalidState("User already has an active membership")
        logger.info(f"🔄 Membership for subscription {subscription_id} was created concurrently ({winner.id})")
        return SyncResult(True, winner, "Membership already exists")

    # ============================================================================
    # Status check
    # ============================================================================

    async def check_membership(self, subscription_id: str, caller: Caller) -> MembershipCheck:
        membership = self.repo.get_membership_by_subscription(self.db, subscription_id)
        if membership:
            if not caller.is_trusted and membership.user_id != caller.user_id:
                raise Forbidden("Membership does not belong to this user")
            active = membership.status == "active"
            return MembershipCheck(
                membership_active=active,
                membership_id=membership.id,
                status=membership.status,
                message="Membership is active" if active else f"Membership is {membership.status}",
            )

        try:
            subscription = await self.provider.retrieve_subscription(subscription_id)
        except ProviderError as e:
            logger.warning(f"⚠️ Could not check subscription {subscription_id}: {e}")
            return MembershipCheck(membership_active=False, message="Membership not found")

        if subscription is None or (
            not caller.is_trusted and subscription.metadata.get("user_id") != str(caller.user_id)
        ):
            return MembershipCheck(membership_active=False, subscription_active=False, message="Membership not found")

        if subscription.status in ("active", "trialing"):
            return MembershipCheck(
                membership_active=False,
                subscription_active=True,
                message="Payment processed, membership activation in progress...",
            )
        return MembershipCheck(
            membership_active=False,
            subscription_active=False,
            message=f"Subscription status is {subscription.status}",
        )
