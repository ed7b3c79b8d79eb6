from __future__ import annotations

from typing import TYPE_CHECKING

from billsync.billing.alerts import DisputeAlert
from billsync.billing.errors import InvalidEventPayloadError
from billsync.billing.provider import ref_id
from billsync.billing.signature import VerifiedEvent

if TYPE_CHECKING:
    from billsync.billing.router import ReconcileContext

def escalate_dispute(ctx: ReconcileContext, event: VerifiedEvent) -> str:
    # disputes never touch billing state; a human decides what happens next
    obj = event.data_object
    dispute_id = obj.get("id")
    if not isinstance(dispute_id, str) or not dispute_id:
        raise InvalidEventPayloadError(f"{event.type} without dispute id")

    ctx.alerts.dispute_opened(
        DisputeAlert(
            dispute_id=dispute_id,
            charge_id=ref_id(obj.get("charge")),
            amount=int(obj.get("amount") or 0),
            currency=obj.get("currency"),
            reason=obj.get("reason"),
            event_id=event.id,
        )
    )
    return "escalated"
