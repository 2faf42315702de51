"""Pytest configuration for the funding engine tests

Shared fixtures: an in-memory database, user and campaign factories,
a controllable payment gateway and a TestClient wired to the test session.
"""

import os
import uuid
from decimal import Decimal
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Set test environment before any project module reads it
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "test-webhook-secret")

from database.models import Base, User, UserRole, UserType, SubscriptionStatus  # noqa: E402
from database.funding_models import (  # noqa: E402
    Campaign, CampaignStatus, CampaignDuration, Milestone, MilestoneStatus, PaymentStatus
)
from core.payment_gateway import PaymentGateway, TransferResult  # noqa: E402
from services.errors import ExternalServiceError  # noqa: E402
from services.funding_ledger import FundingLedger  # noqa: E402


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """In-memory SQLite shared across threads so TestClient sees the same data."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(test_db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Payment Gateway
# ============================================================================

class FakeGateway(PaymentGateway):
    """Records transfers; set ``fail_with`` to make the next calls raise."""

    def __init__(self):
        self.calls = []
        self.transfers = {}
        self.fail_with = None

    def create_transfer(self, destination, amount, idempotency_key, metadata=None):
        self.calls.append({
            "destination": destination,
            "amount": Decimal(str(amount)),
            "idempotency_key": idempotency_key,
            "metadata": metadata or {},
        })
        if self.fail_with is not None:
            raise self.fail_with
        if idempotency_key not in self.transfers:
            self.transfers[idempotency_key] = TransferResult(id=f"tr_test_{len(self.transfers) + 1}", status="paid")
        return self.transfers[idempotency_key]

    def fail_next(self, message="Payment processor timed out, please retry"):
        self.fail_with = ExternalServiceError(message, retryable=True)


@pytest.fixture
def gateway():
    return FakeGateway()


# ============================================================================
# Model Factories
# ============================================================================

@pytest.fixture
def make_user(db):
    def _make(user_type=UserType.FAN, **overrides):
        values = {
            "email": f"{user_type.value}-{uuid.uuid4().hex[:8]}@example.com",
            "name": f"Test {user_type.value}",
            "user_type": user_type,
            "role": UserRole.ADMIN if user_type == UserType.ADMIN else UserRole.USER,
        }
        if user_type == UserType.ARTIST:
            values.update({
                "is_pro_member": True,
                "subscription_status": SubscriptionStatus.ACTIVE,
                "stripe_connect_id": f"acct_{uuid.uuid4().hex[:12]}",
                "is_stripe_account_connected": True,
            })
        values.update(overrides)
        user = User(**values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def artist(make_user):
    return make_user(UserType.ARTIST)


@pytest.fixture
def fan(make_user):
    return make_user(UserType.FAN)


@pytest.fixture
def admin(make_user):
    return make_user(UserType.ADMIN)


@pytest.fixture
def make_campaign(db):
    """Insert a campaign directly, bypassing metadata verification."""
    def _make(artist, funding_goal="10000", milestones=(("Recording", "3000"), ("Marketing", "7000")),
              status=CampaignStatus.ACTIVE, expected_roi=12.0, **overrides):
        campaign = Campaign(
            artist_id=artist.id,
            song_title="Midnight Drive",
            artist_name=artist.name,
            genre="pop",
            duration=CampaignDuration.ONE_YEAR,
            funding_goal=Decimal(funding_goal),
            expected_roi_percentage=expected_roi,
            automatic_roi={"investor_share": 12500.0, "confidence": 80},
            status=status,
            is_active=status == CampaignStatus.ACTIVE,
            **overrides
        )
        for order, (name, amount) in enumerate(milestones, start=1):
            campaign.milestones.append(Milestone(
                name=name,
                amount=Decimal(amount),
                order=order,
                status=MilestoneStatus.PENDING,
            ))
        db.add(campaign)
        db.commit()
        db.refresh(campaign)
        return campaign

    return _make


@pytest.fixture
def contribute(db, make_user):
    """Record a successful contribution from a fresh fan and commit it."""
    def _contribute(campaign, amount, investor=None, status=PaymentStatus.SUCCESS, transaction_id=None):
        investor = investor or make_user(UserType.FAN)
        payment = FundingLedger(db).record_contribution(
            campaign.id, investor.id, amount, status, transaction_id
        )
        db.commit()
        return payment

    return _contribute


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(db, gateway):
    from server import create_app
    from database.config import get_db
    from core.payment_gateway import get_payment_gateway

    test_app = create_app()

    def override_get_db():
        yield db

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_payment_gateway] = lambda: gateway
    return test_app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers():
    from auth.dependencies import create_access_token

    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.email)}"}

    return _headers
