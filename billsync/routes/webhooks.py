from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from billsync.billing.errors import (
    AuthenticityError,
    ConfigurationError,
    DuplicateDeliveryError,
    EventInFlightError,
    UnsupportedEventTypeError,
)
from billsync.billing.processor import WebhookProcessor
from billsync.config import settings
from billsync.db import get_db
from billsync.logging import get_logger
from billsync.ratelimit import rate_limit
from billsync.schemas.webhooks import WebhookAck

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

def get_processor(db: Session = Depends(get_db)) -> WebhookProcessor:
    return WebhookProcessor.from_settings(db)

@router.post("/stripe", response_model=WebhookAck, response_model_exclude_none=True)
async def stripe_webhook(
    request: Request,
    processor: WebhookProcessor = Depends(get_processor),
    stripe_signature: str | None = Header(default=None, alias="stripe-signature"),
    _: None = Depends(
        rate_limit(
            "webhooks:stripe",
            limit_per_window=settings.rate_limit_webhooks_per_min,
            window_seconds=60,
        )
    ),
) -> WebhookAck:
    raw = await request.body()

    try:
        result = processor.process(raw, stripe_signature)
    except AuthenticityError as e:
        logger.warning("stripe webhook rejected", extra={"extra_data": {"reason": str(e)}})
        raise HTTPException(status_code=400, detail=str(e))
    except (DuplicateDeliveryError, EventInFlightError):
        # another delivery of the same event is running; stripe will redeliver
        raise HTTPException(status_code=409, detail="webhook_in_flight")
    except UnsupportedEventTypeError as e:
        if settings.ack_unsupported_events:
            return WebhookAck(status="ignored", reason="not supported", event_id=e.event_id)
        raise HTTPException(status_code=422, detail=f"unsupported event type: {e.event_type}")
    except ConfigurationError as e:
        logger.error("stripe webhook misconfigured", extra={"extra_data": {"error": str(e)}})
        raise HTTPException(status_code=500, detail="webhook_not_configured")
    except Exception:
        raise HTTPException(status_code=500, detail="webhook_processing_failed")

    if result.duplicate:
        return WebhookAck(status="ignored", reason="duplicate", event_id=result.event_id, duplicate=True)
    return WebhookAck(status="ok", event_id=result.event_id, action=result.action)
