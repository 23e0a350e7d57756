"""Shared pytest fixtures for test suite"""
import os
import sys
from pathlib import Path
from typing import Generator
from unittest.mock import Mock, patch

import pytest

# Test configuration must be in place before billing.core.config is imported
TEST_WEBHOOK_SECRET = "whsec_unit_test_9f2c41"
TEST_ADMIN_KEY = "test-admin-key"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RUNTIME_MODE"] = "production"
os.environ["STRIPE_WEBHOOK_SECRET"] = TEST_WEBHOOK_SECRET
os.environ["STRIPE_SECRET_KEY"] = "sk_test_unit"
os.environ["ADMIN_API_KEY"] = TEST_ADMIN_KEY
os.environ["OTEL_EXPORTER_OTLP_ENDPOINT"] = ""

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from billing.core.config import RuntimeMode
from billing.db.session import get_db
from billing.main import app
from billing.models import Base
from billing.models.profile import UserProfile
from billing.services.webhook_dispatcher import WebhookDispatcher


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    # Create all tables
    Base.metadata.create_all(bind=test_engine)

    # Create session
    session = TestSessionLocal()

    try:
        yield session
    finally:
        session.close()
        # Drop all tables after test
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database"""

    # Override get_db dependency to use test database
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db

    try:
        # Disable OpenTelemetry instrumentation in tests
        with patch('billing.core.otel.initialize_otel', return_value=False):
            with patch('billing.core.otel.setup_otel_logging', return_value=False):
                with patch('billing.core.otel.instrument_sqlalchemy'):
                    with TestClient(app) as test_client:
                        yield test_client
    finally:
        # Cleanup - always clear overrides
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def test_profile(db_session: Session) -> UserProfile:
    """Profile linked to the Stripe customer used by the payload builders"""
    profile = UserProfile(
        email="delivered@resend.dev",
        stripe_customer_id="cus_test123",
        subscription_credits_balance=0,
        purchased_credits_balance=0,
    )
    db_session.add(profile)
    db_session.commit()
    db_session.refresh(profile)
    return profile


@pytest.fixture(scope="function")
def unlinked_profile(db_session: Session) -> UserProfile:
    """Profile that has not been linked to a Stripe customer yet"""
    profile = UserProfile(email="delivered+unlinked@resend.dev")
    db_session.add(profile)
    db_session.commit()
    db_session.refresh(profile)
    return profile


@pytest.fixture(scope="function")
def test_dispatcher(db_session: Session) -> WebhookDispatcher:
    """Dispatcher in test mode (no signature verification)"""
    return WebhookDispatcher(db_session, RuntimeMode.TEST, webhook_secret="")


@pytest.fixture(scope="function")
def production_dispatcher(db_session: Session) -> WebhookDispatcher:
    """Dispatcher that verifies signatures against TEST_WEBHOOK_SECRET"""
    return WebhookDispatcher(db_session, RuntimeMode.PRODUCTION, webhook_secret=TEST_WEBHOOK_SECRET)


@pytest.fixture(scope="function")
def mock_stripe():
    """Mock Stripe API calls made through the Stripe service module"""
    from stripe_payloads import subscription_object

    with patch('billing.services.stripe_service.stripe') as mock_stripe_module:
        mock_stripe_module.Subscription.retrieve = Mock(return_value=subscription_object())
        yield mock_stripe_module
