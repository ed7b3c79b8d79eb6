import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from billsync.billing.alerts import DisputeAlert
from billsync.billing.errors import ProviderFetchError
from billsync.billing.plans import PlanMapper
from billsync.billing.processor import WebhookProcessor
from billsync.config import DEFAULT_PLAN_PRICE_MAP, settings
from billsync.db import get_db
from billsync.main import create_app
from billsync.models import Base

WEBHOOK_SECRET = "whsec_test"

def _engine():
    # postgres when TEST_DATABASE_URL is set, otherwise an in-memory sqlite shared across threads
    database_url = os.environ.get("TEST_DATABASE_URL")
    if database_url:
        return create_engine(database_url, pool_pre_ping=True)
    return create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

@pytest.fixture(autouse=True)
def webhook_settings(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "STRIPE_API_KEY", None)
    monkeypatch.setattr(settings, "webhook_signature_required", True)
    monkeypatch.setattr(settings, "fetch_provider_snapshots", False)
    monkeypatch.setattr(settings, "stale_event_policy", "reject")
    monkeypatch.setattr(settings, "ack_unsupported_events", True)
    monkeypatch.setattr(settings, "rate_limit_enabled", False)
    return settings

@pytest.fixture()
def db_session() -> Session:
    engine = _engine()
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session: Session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()

@pytest.fixture()
def client(db_session: Session) -> TestClient:
    app = create_app()

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    return TestClient(app)

class FakeProvider:
    """Serves canned snapshots and records what was fetched."""

    def __init__(self):
        self.subscriptions = {}
        self.invoices = {}
        self.fail_with: Exception | None = None
        self.calls: list[tuple[str, str]] = []

    def fetch_subscription(self, subscription_id: str):
        self.calls.append(("subscription", subscription_id))
        if self.fail_with is not None:
            raise ProviderFetchError("subscription", subscription_id, self.fail_with)
        return self.subscriptions[subscription_id]

    def fetch_invoice(self, invoice_id: str):
        self.calls.append(("invoice", invoice_id))
        if self.fail_with is not None:
            raise ProviderFetchError("invoice", invoice_id, self.fail_with)
        return self.invoices[invoice_id]

class RecordingAlertSink:
    def __init__(self):
        self.disputes: list[DisputeAlert] = []

    def dispute_opened(self, alert: DisputeAlert) -> None:
        self.disputes.append(alert)

@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()

@pytest.fixture()
def alerts() -> RecordingAlertSink:
    return RecordingAlertSink()

@pytest.fixture()
def make_processor(db_session: Session, alerts: RecordingAlertSink):
    def _make(**overrides) -> WebhookProcessor:
        kwargs = dict(
            plans=PlanMapper(DEFAULT_PLAN_PRICE_MAP, "basic"),
            alerts=alerts,
            webhook_secret=WEBHOOK_SECRET,
            fetch_snapshots=False,
        )
        kwargs.update(overrides)
        return WebhookProcessor(db_session, **kwargs)

    return _make
