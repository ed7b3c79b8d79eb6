from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select, update

from billsync.billing.errors import InvalidEventPayloadError
from billsync.billing.provider import InvoiceSnapshot
from billsync.billing.reconcilers.payments import set_payment_status
from billsync.billing.signature import VerifiedEvent
from billsync.billing.upsert import upsert
from billsync.logging import get_logger
from billsync.models.enums import InvoiceStatus, PaymentStatus
from billsync.models.invoice import Invoice

if TYPE_CHECKING:
    from billsync.billing.router import ReconcileContext

logger = get_logger(__name__)

_MERGED_COLUMNS = (
    "provider_subscription_id",
    "status",
    "amount",
    "currency",
    "due_date",
    "paid_at",
    "hosted_invoice_url",
    "invoice_pdf_url",
)

def load_snapshot(ctx: ReconcileContext, event: VerifiedEvent) -> InvoiceSnapshot:
    invoice_id = event.data_object.get("id")
    if not isinstance(invoice_id, str) or not invoice_id:
        raise InvalidEventPayloadError(f"{event.type} without invoice id")
    if ctx.fetch_snapshots and ctx.provider is not None:
        return ctx.provider.fetch_invoice(invoice_id)
    return InvoiceSnapshot.from_object(event.data_object)

def reconcile_invoice(ctx: ReconcileContext, event: VerifiedEvent) -> str:
    snap = load_snapshot(ctx, event)

    merged = {
        "provider_subscription_id": snap.subscription_id,
        "status": snap.status,
        "amount": snap.amount,
        "currency": snap.currency,
        "due_date": snap.due_date,
        "paid_at": snap.paid_at,
        "hosted_invoice_url": snap.hosted_invoice_url,
        "invoice_pdf_url": snap.invoice_pdf_url,
    }
    values = {
        **merged,
        "provider_invoice_id": snap.id,
        "status": snap.status or InvoiceStatus.draft.value,
        "amount": 0 if snap.amount is None else snap.amount,
        "currency": snap.currency or "usd",
        "last_event_created": event.created,
    }

    # fields missing from a partial payload keep their stored value
    update_columns = [name for name in _MERGED_COLUMNS if merged[name] is not None]
    update_columns.append("last_event_created")

    existed = ctx.db.scalar(select(Invoice.id).where(Invoice.provider_invoice_id == snap.id)) is not None

    applied = upsert(
        ctx.db,
        Invoice,
        "provider_invoice_id",
        values,
        update_columns,
        version_column="last_event_created" if ctx.rejects_stale else None,
    )

    log_data = {"event_id": event.id, "provider_invoice_id": snap.id, "status": values["status"]}
    if not applied:
        logger.info("stale invoice event skipped", extra={"extra_data": log_data})
        return "stale"

    action = "updated" if existed else "created"
    logger.info(f"invoice {action}", extra={"extra_data": log_data})
    return action

def reconcile_invoice_payment(ctx: ReconcileContext, event: VerifiedEvent) -> str:
    snap = load_snapshot(ctx, event)
    succeeded = event.type != "invoice.payment_failed"

    # refresh the local invoice if we already mirror it; unknown invoices are not created here
    invoice_values = {}
    if snap.status is not None:
        invoice_values["status"] = snap.status
    if snap.paid_at is not None:
        invoice_values["paid_at"] = snap.paid_at
    stmt = update(Invoice).where(Invoice.provider_invoice_id == snap.id)
    if ctx.rejects_stale and event.created is not None:
        invoice_values["last_event_created"] = event.created
        stmt = stmt.where(
            (Invoice.last_event_created.is_(None)) | (Invoice.last_event_created <= event.created)
        )
    if invoice_values:
        ctx.db.execute(stmt.values(**invoice_values))

    return set_payment_status(
        ctx.db,
        snap.payment_intent_id,
        PaymentStatus.succeeded if succeeded else PaymentStatus.failed,
        event,
        failure_reason=None if succeeded else "invoice payment failed",
    )
