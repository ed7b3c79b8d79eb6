import json
import logging
import sys
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from billsync.billing.errors import (
    ConfigurationError,
    DuplicateDeliveryError,
    TransientStorageError,
    UnsupportedEventTypeError,
)
from billsync.billing.ledger import MAX_ERROR_LENGTH, Ledger
from billsync.billing.plans import PlanMapper
from billsync.billing.processor import WebhookProcessor
from billsync.billing.router import EventRouter, ReconcileContext, build_default_router
from billsync.billing.signature import event_from_dict
from billsync.billing.upsert import upsert
from billsync.logging import JSONFormatter, TextFormatter
from billsync.models.invoice import Invoice
from billsync.models.webhook_event import WebhookEvent

def _event(event_id: str = "evt_unit", event_type: str = "invoice.created"):
    return event_from_dict({"id": event_id, "type": event_type, "data": {"object": {"id": "in_unit"}}})

def test_default_router_covers_supported_types():
    router = build_default_router()

    assert router.supported_types() == sorted(
        [
            "charge.dispute.created",
            "charge.failed",
            "charge.succeeded",
            "customer.subscription.created",
            "customer.subscription.deleted",
            "customer.subscription.updated",
            "invoice.created",
            "invoice.paid",
            "invoice.payment_failed",
            "invoice.payment_succeeded",
            "invoice.updated",
            "payment_intent.canceled",
            "payment_intent.payment_failed",
            "payment_intent.succeeded",
        ]
    )
    assert not router.supports("foo.bar")

def test_router_unknown_type_raises_not_supported(db_session):
    router = EventRouter()
    ctx = ReconcileContext(db=db_session, plans=PlanMapper({}, "basic"), alerts=None)

    with pytest.raises(UnsupportedEventTypeError) as exc_info:
        router.dispatch(ctx, _event(event_type="foo.bar"))

    assert exc_info.value.event_type == "foo.bar"
    assert str(exc_info.value) == "not supported"

def test_router_rejects_duplicate_registration():
    router = EventRouter()
    router.add(["invoice.created"], lambda ctx, event: "a")

    with pytest.raises(ValueError):
        router.add(["invoice.created"], lambda ctx, event: "b")

def test_plan_mapper_fallback():
    plans = PlanMapper({"price_a": "alpha"}, "basic")

    assert plans.plan_for_price("price_a") == "alpha"
    assert plans.plan_for_price("price_zzz") == "basic"
    assert plans.plan_for_price(None) == "basic"

    with pytest.raises(ConfigurationError):
        PlanMapper({}, "")

def test_ledger_create_twice_raises_duplicate(db_session):
    ledger = Ledger(db_session)
    first = ledger.create(_event("evt_dup"))
    assert first.status == "pending"
    assert first.attempts == 0

    with pytest.raises(DuplicateDeliveryError):
        ledger.create(_event("evt_dup"))

    count = db_session.scalar(select(func.count()).select_from(WebhookEvent).where(WebhookEvent.event_id == "evt_dup"))
    assert count == 1

def test_ledger_same_event_id_from_another_provider_is_distinct(db_session):
    Ledger(db_session).create(_event("evt_shared"))
    Ledger(db_session, provider="other").create(_event("evt_shared"))

    assert db_session.scalar(select(func.count()).select_from(WebhookEvent)) == 2
    assert Ledger(db_session).lookup("evt_shared").provider == "stripe"

def test_ledger_failure_bookkeeping(db_session):
    ledger = Ledger(db_session)
    record = ledger.create(_event("evt_book"))

    ledger.mark_failed(record, "x" * (MAX_ERROR_LENGTH + 50))
    db_session.commit()
    assert record.is_failed
    assert len(record.error) == MAX_ERROR_LENGTH
    assert record.attempts == 1
    assert ledger.list_failed() == [record]

    ledger.mark_processed(record)
    db_session.commit()
    assert record.is_processed
    assert record.error is None
    assert record.attempts == 2
    assert record.processed_at is not None
    assert ledger.list_failed() == []

def test_processor_rejects_unknown_stale_policy(db_session):
    with pytest.raises(ConfigurationError):
        WebhookProcessor(db_session, stale_event_policy="sometimes")

def test_upsert_rejects_unsupported_dialect():
    bind = SimpleNamespace(dialect=SimpleNamespace(name="mysql"))
    db = SimpleNamespace(get_bind=lambda: bind)

    with pytest.raises(ConfigurationError, match="mysql"):
        upsert(db, Invoice, "provider_invoice_id", {"provider_invoice_id": "in_1"}, ["status"])

def _record(extra_data=None, exc_info=None) -> logging.LogRecord:
    record = logging.LogRecord("billsync.test", logging.INFO, __file__, 1, "webhook event processed", None, exc_info)
    if extra_data is not None:
        record.extra_data = extra_data
    return record

def test_json_log_lines_carry_service_and_correlation_fields():
    formatter = JSONFormatter(env="test")
    line = json.loads(
        formatter.format(_record({"event_id": "evt_1", "event_type": "invoice.paid", "action": "noop"}))
    )

    assert line["service"] == "billsync"
    assert line["env"] == "test"
    assert line["message"] == "webhook event processed"
    assert line["event_id"] == "evt_1"
    assert line["event_type"] == "invoice.paid"
    assert line["data"] == {"action": "noop"}

def test_json_log_lines_name_the_exception_type():
    try:
        raise TransientStorageError("database is locked")
    except TransientStorageError:
        record = _record(exc_info=sys.exc_info())

    line = json.loads(JSONFormatter().format(record))
    assert line["error_type"] == "TransientStorageError"
    assert "database is locked" in line["exception"]
    assert "data" not in line
    assert "env" not in line

def test_text_log_lines_append_extra_data():
    line = TextFormatter().format(_record({"event_id": "evt_2"}))

    assert "webhook event processed" in line
    assert line.endswith("event_id=evt_2")
