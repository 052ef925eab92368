from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    auth_uid = Column(String(255), unique=True, index=True, nullable=False)  # Supabase auth "sub"
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), default="senior", nullable=False)  # senior, specialist, admin
    is_active = Column(Boolean, default=True, nullable=False)
    # Stripe linkage (non-PCI metadata only)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    senior_profile = relationship("SeniorProfile", back_populates="user", uselist=False)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class SeniorProfile(Base):
    __tablename__ = "senior_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    address = Column(String(500), nullable=True)
    city = Column(String(255), nullable=True)
    state = Column(String(50), nullable=True)
    zip_code = Column(String(20), nullable=True)
    # Current membership; set by membership sync
    membership_id = Column(Integer, ForeignKey("user_memberships.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="senior_profile")


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    senior_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # requester
    specialist_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)  # provider
    status = Column(
        String(20), default="pending", nullable=False
    )  # pending, confirmed, in-progress, completed, cancelled
    scheduled_at = Column(DateTime, nullable=True)
    duration_minutes = Column(Integer, default=60, nullable=False)
    location_type = Column(String(20), default="remote", nullable=False)  # remote, in-person
    issue_description = Column(Text, nullable=True)
    base_price = Column(Float, nullable=True)  # Service price before travel and tax
    travel_fee = Column(Float, default=0, nullable=True)
    travel_distance_miles = Column(Float, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    payments = relationship("Payment", back_populates="appointment")


class Payment(Base):
    """Captured charge for one appointment, with its payout split"""

    __tablename__ = "payments"
    __table_args__ = (
        # At most one completed payment per appointment
        Index(
            "uq_payments_completed_appointment",
            "appointment_id",
            unique=True,
            postgresql_where=text("status = 'completed'"),
            sqlite_where=text("status = 'completed'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    senior_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    specialist_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    amount = Column(Float, nullable=False)
    currency = Column(String(10), default="USD", nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, completed, refunded, failed
    payment_method = Column(String(50), default="card")
    stripe_payment_id = Column(String(255), unique=True, nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)

    # Payout breakdown
    hours_worked = Column(Float, nullable=True)
    mileage = Column(Float, nullable=True)
    specialist_pay = Column(Float, nullable=True)
    mileage_pay = Column(Float, nullable=True)
    company_revenue = Column(Float, nullable=True)
    tax_amount = Column(Float, nullable=True)
    base_service_amount = Column(Float, nullable=True)
    travel_fee_amount = Column(Float, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointment = relationship("Appointment", back_populates="payments")


class MembershipPlan(Base):
    """Catalog tier (reference data)"""

    __tablename__ = "membership_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    plan_type = Column(String(50), unique=True, nullable=False)  # connect, comfort, family_care_plus, ...
    description = Column(Text, nullable=True)
    monthly_price = Column(Float, nullable=False)
    member_hourly_rate = Column(Float, nullable=False)
    included_visit_minutes = Column(Integer, default=0, nullable=False)
    included_visit_type = Column(String(20), nullable=True)  # remote, in-person, any
    max_covered_people = Column(Integer, default=1, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Membership(Base):
    __tablename__ = "user_memberships"
    __table_args__ = (
        UniqueConstraint("stripe_subscription_id", "user_id", name="uq_membership_subscription_user"),
        # At most one active membership per user
        Index(
            "uq_membership_active_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    membership_plan_id = Column(Integer, ForeignKey("membership_plans.id"), nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, active, cancelled, expired
    stripe_subscription_id = Column(String(255), unique=True, nullable=False)
    stripe_customer_id = Column(String(255), nullable=True)
    started_at = Column(DateTime, nullable=True)
    next_billing_date = Column(Date, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    covered_user_ids = Column(JSON, default=list, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    plan = relationship("MembershipPlan")
