from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billsync.billing.alerts import AlertSink, LogAlertSink
from billsync.billing.errors import ConfigurationError, TransientStorageError, UnsupportedEventTypeError
from billsync.billing.ledger import Ledger
from billsync.billing.plans import PlanMapper
from billsync.billing.provider import BillingProvider, StripeProvider
from billsync.billing.router import EventRouter, ReconcileContext, build_default_router
from billsync.billing.signature import VerifiedEvent, event_from_dict, parse_event, verify_event
from billsync.config import settings
from billsync.logging import get_logger
from billsync.models.webhook_event import WebhookEvent

logger = get_logger(__name__)

@dataclass(frozen=True)
class ProcessResult:
    event_id: str
    event_type: str
    status: str
    action: str | None = None

    @property
    def duplicate(self) -> bool:
        return self.status == "duplicate"

class WebhookProcessor:
    """Verify, dedupe, route and record a single provider event.

    One processor per request/session. Entity writes and the ledger's terminal
    status are committed together; on failure the entity writes are rolled back
    and the ledger row is committed as ``failed`` so a redelivery can retry it.
    """

    def __init__(
        self,
        db: Session,
        router: EventRouter | None = None,
        provider: BillingProvider | None = None,
        plans: PlanMapper | None = None,
        alerts: AlertSink | None = None,
        webhook_secret: str | None = None,
        signature_required: bool = True,
        tolerance_seconds: int = 300,
        fetch_snapshots: bool = True,
        stale_event_policy: str = "reject",
    ):
        if stale_event_policy not in {"reject", "overwrite"}:
            raise ConfigurationError(f"unknown stale event policy: {stale_event_policy}")
        self.db = db
        self.ledger = Ledger(db)
        self.router = router or build_default_router()
        self.provider = provider
        self.plans = plans or PlanMapper.from_settings()
        self.alerts = alerts or LogAlertSink()
        self.webhook_secret = webhook_secret
        self.signature_required = signature_required
        self.tolerance_seconds = tolerance_seconds
        self.fetch_snapshots = fetch_snapshots
        self.stale_event_policy = stale_event_policy

    @classmethod
    def from_settings(cls, db: Session, **overrides) -> WebhookProcessor:
        kwargs = dict(
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            signature_required=settings.webhook_signature_required,
            tolerance_seconds=settings.webhook_tolerance_seconds,
            fetch_snapshots=settings.fetch_provider_snapshots,
            stale_event_policy=settings.stale_event_policy,
        )
        if settings.fetch_provider_snapshots and settings.STRIPE_API_KEY:
            kwargs["provider"] = StripeProvider()
        kwargs.update(overrides)
        return cls(db, **kwargs)

    def verify(self, payload: bytes, signature: str | None) -> VerifiedEvent:
        if self.webhook_secret:
            return verify_event(payload, signature, self.webhook_secret, self.tolerance_seconds)
        if self.signature_required:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
        return parse_event(payload)

    def process(self, payload: bytes, signature: str | None) -> ProcessResult:
        # nothing is persisted for a payload that fails verification
        event = self.verify(payload, signature)

        record = self.ledger.lookup(event.id)
        if record is not None and record.is_processed:
            return self._duplicate(event)

        if record is None:
            record = self.ledger.create(event)
        elif record.is_failed:
            logger.info(
                "retrying failed webhook event",
                extra={"extra_data": {"event_id": event.id, "event_type": event.type, "attempts": record.attempts}},
            )

        record = self.ledger.acquire(record)
        if record.is_processed:
            self.db.rollback()
            return self._duplicate(event)

        return self._run(record, event)

    def replay(self, record: WebhookEvent) -> ProcessResult:
        """Re-run a stored event; the payload was verified when it was first received."""
        event = event_from_dict(record.payload)
        record = self.ledger.acquire(record)
        if record.is_processed:
            self.db.rollback()
            return self._duplicate(event)
        return self._run(record, event)

    def _duplicate(self, event: VerifiedEvent) -> ProcessResult:
        logger.info(
            "webhook event already processed",
            extra={"extra_data": {"event_id": event.id, "event_type": event.type}},
        )
        return ProcessResult(event_id=event.id, event_type=event.type, status="duplicate")

    def _context(self) -> ReconcileContext:
        return ReconcileContext(
            db=self.db,
            plans=self.plans,
            alerts=self.alerts,
            provider=self.provider,
            fetch_snapshots=self.fetch_snapshots,
            stale_event_policy=self.stale_event_policy,
        )

    def _run(self, record: WebhookEvent, event: VerifiedEvent) -> ProcessResult:
        log_data = {"event_id": event.id, "event_type": event.type}
        try:
            action = self.router.dispatch(self._context(), event)
            self.ledger.mark_processed(record)
            self.db.commit()
        except Exception as e:
            # drop partial entity writes, keep the failure visible in the ledger
            self.db.rollback()
            if isinstance(e, UnsupportedEventTypeError):
                reason = str(e)
            else:
                reason = f"{type(e).__name__}: {e}"
            self.ledger.mark_failed(record, reason)
            self.db.commit()

            if isinstance(e, UnsupportedEventTypeError):
                logger.info("webhook event type not supported", extra={"extra_data": log_data})
                raise
            logger.error(
                "webhook event processing failed",
                extra={"extra_data": {**log_data, "error": reason}},
                exc_info=True,
            )
            if isinstance(e, SQLAlchemyError):
                raise TransientStorageError(reason) from e
            raise

        logger.info("webhook event processed", extra={"extra_data": {**log_data, "action": action}})
        return ProcessResult(event_id=event.id, event_type=event.type, status="processed", action=action)
