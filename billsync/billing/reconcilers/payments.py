from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from billsync.billing.errors import InvalidEventPayloadError
from billsync.billing.provider import ref_id
from billsync.billing.signature import VerifiedEvent
from billsync.logging import get_logger
from billsync.models.enums import PaymentStatus
from billsync.models.payment import Payment

if TYPE_CHECKING:
    from billsync.billing.router import ReconcileContext

logger = get_logger(__name__)

_INTENT_STATUS = {
    "payment_intent.succeeded": PaymentStatus.succeeded,
    "payment_intent.payment_failed": PaymentStatus.failed,
    "payment_intent.canceled": PaymentStatus.canceled,
}

def find_payment(db: Session, payment_intent_id: str) -> Payment | None:
    return db.scalar(
        select(Payment)
        .where(Payment.provider_payment_intent_id == payment_intent_id)
        .with_for_update()
    )

def set_payment_status(
    db: Session,
    payment_intent_id: str | None,
    status: PaymentStatus,
    event: VerifiedEvent,
    failure_reason: str | None = None,
) -> str:
    """Move the local payment to ``status``; payments we don't track are a no-op."""
    if not payment_intent_id:
        logger.info(
            "payment event without payment intent",
            extra={"extra_data": {"event_id": event.id, "event_type": event.type}},
        )
        return "noop"

    payment = find_payment(db, payment_intent_id)
    if payment is None:
        logger.info(
            "no local payment for intent",
            extra={"extra_data": {"event_id": event.id, "payment_intent_id": payment_intent_id}},
        )
        return "noop"

    # TODO: enforce a transition table once refunds flow through here
    payment.status = status.value
    if status == PaymentStatus.failed:
        payment.failure_reason = failure_reason or "payment failed"
    elif status == PaymentStatus.succeeded:
        payment.failure_reason = None

    logger.info(
        "payment status updated",
        extra={
            "extra_data": {
                "event_id": event.id,
                "payment_id": str(payment.id),
                "payment_intent_id": payment_intent_id,
                "status": status.value,
            }
        },
    )
    return status.value

def reconcile_payment_intent(ctx: ReconcileContext, event: VerifiedEvent) -> str:
    obj = event.data_object
    intent_id = obj.get("id")
    if not isinstance(intent_id, str) or not intent_id:
        raise InvalidEventPayloadError(f"{event.type} without payment intent id")

    status = _INTENT_STATUS[event.type]
    error = obj.get("last_payment_error")
    reason = error.get("message") if isinstance(error, dict) else None
    return set_payment_status(ctx.db, intent_id, status, event, failure_reason=reason)

def attach_charge(ctx: ReconcileContext, event: VerifiedEvent) -> str:
    obj = event.data_object
    charge_id = obj.get("id")
    intent_id = ref_id(obj.get("payment_intent"))
    if not intent_id:
        return "noop"

    payment = find_payment(ctx.db, intent_id)
    if payment is None:
        logger.info(
            "no local payment for charge",
            extra={"extra_data": {"event_id": event.id, "charge_id": charge_id, "payment_intent_id": intent_id}},
        )
        return "noop"

    payment.provider_charge_id = charge_id
    logger.info(
        "charge attached to payment",
        extra={"extra_data": {"event_id": event.id, "payment_id": str(payment.id), "charge_id": charge_id}},
    )
    return "charge_attached"

def fail_charge(ctx: ReconcileContext, event: VerifiedEvent) -> str:
    obj = event.data_object
    return set_payment_status(
        ctx.db,
        ref_id(obj.get("payment_intent")),
        PaymentStatus.failed,
        event,
        failure_reason=obj.get("failure_message") or "charge failed",
    )
