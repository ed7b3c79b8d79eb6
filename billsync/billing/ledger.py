from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from billsync.billing.errors import DuplicateDeliveryError, EventInFlightError
from billsync.billing.signature import VerifiedEvent
from billsync.logging import get_logger
from billsync.models.enums import WebhookEventStatus
from billsync.models.webhook_event import WebhookEvent

logger = get_logger(__name__)

PROVIDER = "stripe"
MAX_ERROR_LENGTH = 1000

def _now_utc() -> datetime:
    return datetime.now(timezone.utc)

class Ledger:
    """Durable record of every webhook event seen, keyed by (provider, event id)."""

    def __init__(self, db: Session, provider: str = PROVIDER):
        self.db = db
        self.provider = provider

    def lookup(self, event_id: str) -> WebhookEvent | None:
        return self.db.scalar(
            select(WebhookEvent).where(
                WebhookEvent.provider == self.provider,
                WebhookEvent.event_id == event_id,
            )
        )

    def create(self, event: VerifiedEvent) -> WebhookEvent:
        record = WebhookEvent(
            provider=self.provider,
            event_id=event.id,
            event_type=event.type,
            status=WebhookEventStatus.pending.value,
            payload=event.payload,
            attempts=0,
        )
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            # a concurrent delivery won the insert; never overwrite its row
            self.db.rollback()
            logger.info(
                "webhook ledger insert lost race",
                extra={"extra_data": {"event_id": event.id, "event_type": event.type}},
            )
            raise DuplicateDeliveryError(event.id) from None
        return record

    def acquire(self, record: WebhookEvent) -> WebhookEvent:
        """Lock the row for the rest of the transaction and reload its status."""
        try:
            locked = self.db.scalar(
                select(WebhookEvent)
                .where(WebhookEvent.id == record.id)
                .with_for_update(nowait=True)
                .execution_options(populate_existing=True)
            )
        except OperationalError:
            self.db.rollback()
            raise EventInFlightError(record.event_id) from None
        return locked if locked is not None else record

    def mark_processed(self, record: WebhookEvent) -> None:
        record.status = WebhookEventStatus.processed.value
        record.error = None
        record.attempts = (record.attempts or 0) + 1
        record.processed_at = _now_utc()

    def mark_failed(self, record: WebhookEvent, reason: str) -> None:
        # failed rows stay eligible for redelivery
        record.status = WebhookEventStatus.failed.value
        record.error = reason[:MAX_ERROR_LENGTH]
        record.attempts = (record.attempts or 0) + 1
        record.processed_at = None

    def list_failed(self, limit: int = 50, event_type: str | None = None) -> list[WebhookEvent]:
        q = (
            select(WebhookEvent)
            .where(
                WebhookEvent.provider == self.provider,
                WebhookEvent.status == WebhookEventStatus.failed.value,
            )
            .order_by(WebhookEvent.received_at.asc())
            .limit(limit)
        )
        if event_type:
            q = q.where(WebhookEvent.event_type == event_type)
        return list(self.db.scalars(q).all())
