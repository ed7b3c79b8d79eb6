"""Read-only access to the billing provider plus the snapshot shapes the reconcilers consume.

Webhook payloads are frequently partial, so reconcilers prefer a fresh snapshot
fetched by id. When fetching is disabled the same snapshot types are built
straight from the event's ``data.object``.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

import stripe

from billsync.billing.errors import ConfigurationError, ProviderFetchError
from billsync.config import settings
from billsync.logging import get_logger

logger = get_logger(__name__)

def _get(d: Any, *path: str, default: Any = None) -> Any:
    cur = d
    for p in path:
        if not isinstance(cur, dict) or p not in cur:
            return default
        cur = cur[p]
    return cur

def from_epoch(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)

def ref_id(value: Any) -> str | None:
    # stripe fields are either an id string or an expanded object
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("id") or None
    return None

def extract_price_id(obj: dict[str, Any]) -> str | None:
    items = _get(obj, "items", "data", default=[]) or []
    if items and isinstance(items[0], dict):
        price_id = ref_id(items[0].get("price"))
        if price_id:
            return price_id
    return ref_id(obj.get("plan")) or ref_id(obj.get("price"))

@dataclass(frozen=True)
class SubscriptionSnapshot:
    id: str
    status: str
    price_id: str | None = None
    customer_id: str | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    canceled_at: datetime | None = None

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> SubscriptionSnapshot:
        first_item = (_get(obj, "items", "data", default=[]) or [{}])[0]
        # newer api versions moved the billing period onto the subscription item
        period_start = obj.get("current_period_start") or _get(first_item, "current_period_start")
        period_end = obj.get("current_period_end") or _get(first_item, "current_period_end")
        return cls(
            id=obj["id"],
            status=obj.get("status") or "incomplete",
            price_id=extract_price_id(obj),
            customer_id=ref_id(obj.get("customer")),
            current_period_start=from_epoch(period_start),
            current_period_end=from_epoch(period_end),
            cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
            canceled_at=from_epoch(obj.get("canceled_at")),
        )

@dataclass(frozen=True)
class InvoiceSnapshot:
    """Invoice state; ``None`` means the source object did not carry the field."""

    id: str
    status: str | None = None
    amount: int | None = None
    currency: str | None = None
    subscription_id: str | None = None
    payment_intent_id: str | None = None
    due_date: datetime | None = None
    paid_at: datetime | None = None
    hosted_invoice_url: str | None = None
    invoice_pdf_url: str | None = None

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> InvoiceSnapshot:
        amount = obj.get("amount_due")
        if amount is None:
            amount = obj.get("total")
        currency = obj.get("currency")
        return cls(
            id=obj["id"],
            status=obj.get("status") or None,
            amount=None if amount is None else int(amount),
            currency=currency.lower() if currency else None,
            subscription_id=ref_id(obj.get("subscription")),
            payment_intent_id=ref_id(obj.get("payment_intent")) or ref_id(obj.get("payment")),
            due_date=from_epoch(obj.get("due_date")),
            paid_at=from_epoch(_get(obj, "status_transitions", "paid_at")),
            hosted_invoice_url=obj.get("hosted_invoice_url"),
            invoice_pdf_url=obj.get("invoice_pdf"),
        )

class BillingProvider(Protocol):
    def fetch_subscription(self, subscription_id: str) -> SubscriptionSnapshot: ...

    def fetch_invoice(self, invoice_id: str) -> InvoiceSnapshot: ...

def _to_dict(obj: Any) -> dict[str, Any]:
    if isinstance(obj, dict) and not hasattr(obj, "to_dict"):
        return obj
    return obj.to_dict()

class StripeProvider:
    def __init__(self, api_key: str | None = None, max_network_retries: int | None = None):
        self.api_key = api_key or settings.STRIPE_API_KEY
        self.max_network_retries = (
            settings.stripe_max_network_retries if max_network_retries is None else max_network_retries
        )

    def _init_stripe(self) -> None:
        if not self.api_key:
            raise ConfigurationError("STRIPE_API_KEY is not configured")
        stripe.api_key = self.api_key
        stripe.max_network_retries = self.max_network_retries

    def fetch_subscription(self, subscription_id: str) -> SubscriptionSnapshot:
        self._init_stripe()
        try:
            sub = stripe.Subscription.retrieve(subscription_id)
        except stripe.StripeError as e:
            logger.error(
                "stripe subscription fetch failed",
                extra={"extra_data": {"subscription_id": subscription_id, "error": str(e)}},
            )
            raise ProviderFetchError("subscription", subscription_id, e) from e
        return SubscriptionSnapshot.from_object(_to_dict(sub))

    def fetch_invoice(self, invoice_id: str) -> InvoiceSnapshot:
        self._init_stripe()
        try:
            inv = stripe.Invoice.retrieve(invoice_id)
        except stripe.StripeError as e:
            logger.error(
                "stripe invoice fetch failed",
                extra={"extra_data": {"invoice_id": invoice_id, "error": str(e)}},
            )
            raise ProviderFetchError("invoice", invoice_id, e) from e
        return InvoiceSnapshot.from_object(_to_dict(inv))
