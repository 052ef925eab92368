import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["STRIPE_SECRET_KEY"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.auth import get_current_user  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.domain.billing.stripe_service import get_stripe_service  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Appointment, MembershipPlan, SeniorProfile, User  # noqa: E402

from .factories import FakeProvider  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def provider():
    return FakeProvider()


# ============================================================================
# FACTORIES
# ============================================================================


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(role="senior", stripe_customer_id=None, with_profile=True, **kwargs):
        counter["n"] += 1
        user = User(
            auth_uid=kwargs.pop("auth_uid", f"auth-{counter['n']}"),
            email=kwargs.pop("email", f"user{counter['n']}@example.com"),
            full_name=kwargs.pop("full_name", f"User {counter['n']}"),
            role=role,
            stripe_customer_id=stripe_customer_id,
            **kwargs,
        )
        db.add(user)
        db.flush()
        if with_profile and role == "senior":
            db.add(SeniorProfile(user_id=user.id, address="1 Main St", city="Fayetteville", state="NC"))
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_appointment(db):
    def _make_appointment(senior, specialist=None, **kwargs):
        appointment = Appointment(
            senior_id=senior.id,
            specialist_id=specialist.id if specialist else None,
            status=kwargs.pop("status", "pending"),
            duration_minutes=kwargs.pop("duration_minutes", 90),
            location_type=kwargs.pop("location_type", "in-person"),
            base_price=kwargs.pop("base_price", 140.0),
            travel_fee=kwargs.pop("travel_fee", 12.0),
            travel_distance_miles=kwargs.pop("travel_distance_miles", 32.0),
            **kwargs,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make_appointment


@pytest.fixture
def make_plan(db):
    def _make_plan(plan_type="comfort", **kwargs):
        values = {
            "name": "Comfort",
            "monthly_price": 59.0,
            "member_hourly_rate": 80.0,
            "included_visit_minutes": 30,
            "included_visit_type": "remote",
            "max_covered_people": 1,
        }
        values.update(kwargs)
        plan = MembershipPlan(plan_type=plan_type, **values)
        db.add(plan)
        db.commit()
        db.refresh(plan)
        return plan

    return _make_plan


# ============================================================================
# HTTP CLIENT
# ============================================================================


@pytest.fixture
def current_user():
    """Mutable holder: tests set ``current_user["user"]`` before calling the API"""
    return {"user": None}


@pytest.fixture
def client(db, provider, current_user):
    def override_get_db():
        yield db

    async def override_get_current_user():
        return current_user["user"]

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_stripe_service] = lambda: provider
    # No context manager: the lifespan (create_all on the real engine, Redis ping) stays off
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()
