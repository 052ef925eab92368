"""Billing repository - Database operations for payment and membership reconciliation"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Appointment, Membership, MembershipPlan, Payment, SeniorProfile, User


class BillingRepository:
    """Repository for billing database operations"""

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def get_completed_payment(db: Session, appointment_id: int) -> Optional[Payment]:
        """The completed payment for an appointment (at most one exists)"""
        return (
            db.query(Payment)
            .filter(Payment.appointment_id == appointment_id, Payment.status == "completed")
            .first()
        )

    @staticmethod
    def get_payment_by_charge(db: Session, charge_id: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.stripe_payment_id == charge_id).first()

    @staticmethod
    def list_payments(db: Session, appointment_id: int) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.appointment_id == appointment_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .all()
        )

    @staticmethod
    def add_payment(db: Session, payment: Payment) -> Payment:
        """Stage a payment row and flush so uniqueness violations surface here"""
        db.add(payment)
        db.flush()
        return payment

    @staticmethod
    def confirm_if_pending(db: Session, appointment_id: int) -> bool:
        """Compare-and-swap pending -> confirmed; False if the status already moved on"""
        updated = (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.status == "pending")
            .update({Appointment.status: "confirmed"}, synchronize_session=False)
        )
        return updated == 1

    @staticmethod
    def get_membership_by_subscription(
        db: Session, subscription_id: str, user_id: Optional[int] = None
    ) -> Optional[Membership]:
        query = db.query(Membership).filter(Membership.stripe_subscription_id == subscription_id)
        if user_id is not None:
            query = query.filter(Membership.user_id == user_id)
        return query.first()

    @staticmethod
    def get_active_membership(db: Session, user_id: int) -> Optional[Membership]:
        return (
            db.query(Membership)
            .filter(Membership.user_id == user_id, Membership.status == "active")
            .first()
        )

    @staticmethod
    def get_plan(db: Session, plan_id: int) -> Optional[MembershipPlan]:
        return db.query(MembershipPlan).filter(MembershipPlan.id == plan_id).first()

    @staticmethod
    def get_plan_by_type(db: Session, plan_type: str) -> Optional[MembershipPlan]:
        return db.query(MembershipPlan).filter(MembershipPlan.plan_type == plan_type).first()

    @staticmethod
    def add_membership(db: Session, membership: Membership) -> Membership:
        db.add(membership)
        db.flush()
        return membership

    @staticmethod
    def link_profile_membership(db: Session, user_id: int, membership_id: int) -> bool:
        """Point the senior profile at a membership; False if the user has no profile"""
        updated = (
            db.query(SeniorProfile)
            .filter(SeniorProfile.user_id == user_id)
            .update({SeniorProfile.membership_id: membership_id}, synchronize_session=False)
        )
        return updated == 1
