from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import case, select, update

from billsync.billing.errors import InvalidEventPayloadError
from billsync.billing.provider import SubscriptionSnapshot, from_epoch
from billsync.billing.signature import VerifiedEvent
from billsync.billing.upsert import upsert
from billsync.logging import get_logger
from billsync.models.enums import SubscriptionStatus
from billsync.models.subscription import Subscription

if TYPE_CHECKING:
    from billsync.billing.router import ReconcileContext

logger = get_logger(__name__)

_MERGED_COLUMNS = (
    "status",
    "current_period_start",
    "current_period_end",
    "cancel_at_period_end",
    "canceled_at",
    "last_event_created",
)

def _subscription_id(event: VerifiedEvent) -> str:
    sub_id = event.data_object.get("id")
    if not isinstance(sub_id, str) or not sub_id:
        raise InvalidEventPayloadError(f"{event.type} without subscription id")
    return sub_id

def load_snapshot(ctx: ReconcileContext, event: VerifiedEvent) -> SubscriptionSnapshot:
    sub_id = _subscription_id(event)
    if ctx.fetch_snapshots and ctx.provider is not None:
        return ctx.provider.fetch_subscription(sub_id)
    return SubscriptionSnapshot.from_object(event.data_object)

def reconcile_subscription(ctx: ReconcileContext, event: VerifiedEvent) -> str:
    snap = load_snapshot(ctx, event)

    existed = ctx.db.scalar(
        select(Subscription.id).where(Subscription.provider_subscription_id == snap.id)
    ) is not None

    # partial payloads without a price must not reset the plan to the default
    maps_plan = snap.price_id is not None or not existed
    plan_code = ctx.plans.plan_for_price(snap.price_id) if maps_plan else ctx.plans.default_plan_code

    values = {
        "provider_subscription_id": snap.id,
        "provider_customer_id": snap.customer_id,
        "plan_code": plan_code,
        "status": snap.status,
        "current_period_start": snap.current_period_start,
        "current_period_end": snap.current_period_end,
        "cancel_at_period_end": snap.cancel_at_period_end,
        "canceled_at": snap.canceled_at,
        "last_event_created": event.created,
    }

    update_columns = list(_MERGED_COLUMNS)
    if snap.price_id is not None:
        update_columns.append("plan_code")
    if snap.customer_id is not None:
        update_columns.append("provider_customer_id")

    applied = upsert(
        ctx.db,
        Subscription,
        "provider_subscription_id",
        values,
        update_columns,
        version_column="last_event_created" if ctx.rejects_stale else None,
        terminal_status=SubscriptionStatus.canceled.value,
    )

    log_data = {"event_id": event.id, "provider_subscription_id": snap.id, "status": snap.status}
    if maps_plan:
        log_data["plan_code"] = plan_code
    if not applied:
        # older than the stored version, or the row is already canceled
        logger.info("stale subscription event skipped", extra={"extra_data": log_data})
        return "stale"

    action = "updated" if existed else "created"
    logger.info(f"subscription {action}", extra={"extra_data": log_data})
    return action

def cancel_subscription(ctx: ReconcileContext, event: VerifiedEvent) -> str:
    sub_id = _subscription_id(event)
    canceled_at = from_epoch(event.data_object.get("canceled_at")) or datetime.now(timezone.utc)

    values = {
        "status": SubscriptionStatus.canceled.value,
        "canceled_at": canceled_at,
        "cancel_at_period_end": False,
    }
    if event.created is not None:
        # cancel is terminal and always lands, but the version only moves forward
        current = Subscription.last_event_created
        values["last_event_created"] = case(
            (current.is_(None), event.created),
            (current < event.created, event.created),
            else_=current,
        )

    # cancellation is a status change; rows are never deleted
    result = ctx.db.execute(
        update(Subscription)
        .where(Subscription.provider_subscription_id == sub_id)
        .values(**values)
    )

    if result.rowcount == 0:
        logger.info(
            "subscription deleted for unknown id",
            extra={"extra_data": {"event_id": event.id, "provider_subscription_id": sub_id}},
        )
        return "noop"

    logger.info(
        "subscription canceled",
        extra={"extra_data": {"event_id": event.id, "provider_subscription_id": sub_id}},
    )
    return "canceled"
