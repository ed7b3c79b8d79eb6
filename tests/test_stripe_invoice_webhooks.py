import json
import time

from sqlalchemy import func, select

from billsync.billing.signature import signature_header
from billsync.models.invoice import Invoice
from billsync.models.payment import Payment
from billsync.models.webhook_event import WebhookEvent

SECRET = "whsec_test"

def _post_invoice(client, event_id: str, event_type: str, obj: dict, created: int | None = None):
    payload = {"id": event_id, "type": event_type, "data": {"object": obj}}
    if created is not None:
        payload["created"] = created
    raw = json.dumps(payload).encode("utf-8")
    return client.post(
        "/webhooks/stripe",
        content=raw,
        headers={"content-type": "application/json", "stripe-signature": signature_header(SECRET, raw)},
    )

def _seed_payment(db_session, intent_id: str) -> Payment:
    payment = Payment(provider_payment_intent_id=intent_id, amount=1999, currency="usd", status="pending")
    db_session.add(payment)
    db_session.commit()
    return payment

def _invoice(db_session, invoice_id: str) -> Invoice | None:
    db_session.expire_all()
    return db_session.scalar(select(Invoice).where(Invoice.provider_invoice_id == invoice_id))

def test_invoice_created_then_updated_merges(client, db_session):
    base = {
        "id": "in_1",
        "subscription": "sub_1",
        "status": "open",
        "amount_due": 1999,
        "currency": "USD",
        "due_date": 1_900_000_000,
        "hosted_invoice_url": "https://invoice.stripe.com/i/in_1",
    }
    r = _post_invoice(client, "evt_inv_created", "invoice.created", base, created=100)
    assert r.status_code == 200, r.text
    assert r.json()["action"] == "created"

    inv = _invoice(db_session, "in_1")
    assert inv.status == "open"
    assert inv.amount == 1999
    assert inv.currency == "usd"
    assert inv.provider_subscription_id == "sub_1"
    assert inv.due_date is not None

    r = _post_invoice(
        client,
        "evt_inv_updated",
        "invoice.updated",
        {**base, "status": "paid", "invoice_pdf": "https://pay.stripe.com/in_1.pdf"},
        created=200,
    )
    assert r.status_code == 200
    assert r.json()["action"] == "updated"

    inv = _invoice(db_session, "in_1")
    assert inv.status == "paid"
    assert inv.invoice_pdf_url == "https://pay.stripe.com/in_1.pdf"
    assert inv.last_event_created == 200
    assert db_session.scalar(select(func.count()).select_from(Invoice)) == 1

def test_out_of_order_invoice_update_is_skipped(client, db_session):
    obj = {"id": "in_ooo", "status": "paid", "amount_due": 500, "currency": "usd"}
    r = _post_invoice(client, "evt_inv_new", "invoice.updated", obj, created=300)
    assert r.status_code == 200

    r = _post_invoice(client, "evt_inv_old", "invoice.updated", {**obj, "status": "open"}, created=250)
    assert r.status_code == 200
    assert r.json()["action"] == "stale"

    assert _invoice(db_session, "in_ooo").status == "paid"

def test_invoice_paid_marks_payment_succeeded_and_is_idempotent(client, db_session):
    _seed_payment(db_session, "pi_inv_ok")
    _post_invoice(client, "evt_inv_open", "invoice.created", {"id": "in_ok", "status": "open", "amount_due": 1999})

    event_id = f"evt_invoice_paid_{int(time.time())}"
    obj = {
        "id": "in_ok",
        "status": "paid",
        "payment_intent": "pi_inv_ok",
        "status_transitions": {"paid_at": 1_700_000_000},
    }
    r1 = _post_invoice(client, event_id, "invoice.payment_succeeded", obj)
    assert r1.status_code == 200
    assert r1.json()["action"] == "succeeded"

    inv = _invoice(db_session, "in_ok")
    assert inv.status == "paid"
    assert inv.paid_at is not None

    payment = db_session.scalar(select(Payment).where(Payment.provider_payment_intent_id == "pi_inv_ok"))
    assert payment.status == "succeeded"

    r2 = _post_invoice(client, event_id, "invoice.payment_succeeded", obj)
    assert r2.status_code == 200
    assert r2.json().get("duplicate") is True

    row = db_session.scalar(select(WebhookEvent).where(WebhookEvent.event_id == event_id))
    assert row is not None
    assert row.status == "processed"

def test_invoice_payment_failed_marks_payment_failed(client, db_session):
    _seed_payment(db_session, "pi_inv_fail")

    r = _post_invoice(
        client,
        "evt_invoice_fail",
        "invoice.payment_failed",
        {"id": "in_fail", "status": "open", "payment_intent": "pi_inv_fail"},
    )
    assert r.status_code == 200
    assert r.json()["action"] == "failed"

    db_session.expire_all()
    payment = db_session.scalar(select(Payment).where(Payment.provider_payment_intent_id == "pi_inv_fail"))
    assert payment.status == "failed"
    assert payment.failure_reason == "invoice payment failed"

def test_invoice_payment_for_unknown_payment_is_noop(client, db_session):
    r = _post_invoice(
        client,
        "evt_dangling",
        "invoice.payment_succeeded",
        {"id": "in_dangling", "status": "paid", "payment_intent": "pi_nobody"},
    )
    assert r.status_code == 200
    assert r.json()["action"] == "noop"

    # payment events never create invoices or payments
    assert db_session.scalar(select(func.count()).select_from(Invoice)) == 0
    assert db_session.scalar(select(func.count()).select_from(Payment)) == 0

    row = db_session.scalar(select(WebhookEvent).where(WebhookEvent.event_id == "evt_dangling"))
    assert row.status == "processed"

def test_partial_invoice_update_keeps_missing_fields(client, db_session):
    full = {
        "id": "in_partial",
        "subscription": "sub_partial",
        "status": "open",
        "amount_due": 2500,
        "currency": "eur",
        "due_date": 1_900_000_000,
        "hosted_invoice_url": "https://invoice.stripe.com/i/in_partial",
        "invoice_pdf": "https://pay.stripe.com/in_partial.pdf",
    }
    r = _post_invoice(client, "evt_partial_1", "invoice.created", full, created=10)
    assert r.status_code == 200

    r = _post_invoice(client, "evt_partial_2", "invoice.updated", {"id": "in_partial", "status": "void"}, created=20)
    assert r.status_code == 200
    assert r.json()["action"] == "updated"

    inv = _invoice(db_session, "in_partial")
    assert inv.status == "void"
    assert inv.amount == 2500
    assert inv.currency == "eur"
    assert inv.provider_subscription_id == "sub_partial"
    assert inv.due_date is not None
    assert inv.hosted_invoice_url == "https://invoice.stripe.com/i/in_partial"
    assert inv.invoice_pdf_url == "https://pay.stripe.com/in_partial.pdf"
    assert inv.last_event_created == 20

def test_partial_invoice_created_uses_column_defaults(client, db_session):
    r = _post_invoice(client, "evt_bare_invoice", "invoice.created", {"id": "in_bare"})
    assert r.status_code == 200

    inv = _invoice(db_session, "in_bare")
    assert inv.status == "draft"
    assert inv.amount == 0
    assert inv.currency == "usd"
