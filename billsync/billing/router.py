from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from billsync.billing.alerts import AlertSink
from billsync.billing.errors import UnsupportedEventTypeError
from billsync.billing.plans import PlanMapper
from billsync.billing.provider import BillingProvider
from billsync.billing.signature import VerifiedEvent

@dataclass
class ReconcileContext:
    db: Session
    plans: PlanMapper
    alerts: AlertSink
    provider: BillingProvider | None = None
    fetch_snapshots: bool = True
    stale_event_policy: str = "reject"

    @property
    def rejects_stale(self) -> bool:
        return self.stale_event_policy == "reject"

# returns a short action label ("created", "updated", "noop", ...) for logs and responses
Reconciler = Callable[[ReconcileContext, VerifiedEvent], str]

def unsupported(ctx: ReconcileContext, event: VerifiedEvent) -> str:
    raise UnsupportedEventTypeError(event.type, event.id)

class EventRouter:
    def __init__(self) -> None:
        self._handlers: dict[str, Reconciler] = {}

    def register(self, *event_types: str) -> Callable[[Reconciler], Reconciler]:
        def _decorator(fn: Reconciler) -> Reconciler:
            for event_type in event_types:
                if event_type in self._handlers:
                    raise ValueError(f"duplicate reconciler for {event_type}")
                self._handlers[event_type] = fn
            return fn

        return _decorator

    def add(self, event_types: Iterable[str], fn: Reconciler) -> None:
        self.register(*event_types)(fn)

    def resolve(self, event_type: str) -> Reconciler:
        return self._handlers.get(event_type, unsupported)

    def supports(self, event_type: str) -> bool:
        return event_type in self._handlers

    def supported_types(self) -> list[str]:
        return sorted(self._handlers)

    def dispatch(self, ctx: ReconcileContext, event: VerifiedEvent) -> str:
        return self.resolve(event.type)(ctx, event)

def build_default_router() -> EventRouter:
    from billsync.billing.reconcilers import disputes, invoices, payments, subscriptions

    router = EventRouter()
    router.add(
        ["customer.subscription.created", "customer.subscription.updated"],
        subscriptions.reconcile_subscription,
    )
    router.add(["customer.subscription.deleted"], subscriptions.cancel_subscription)
    router.add(["invoice.created", "invoice.updated"], invoices.reconcile_invoice)
    router.add(
        ["invoice.payment_succeeded", "invoice.paid", "invoice.payment_failed"],
        invoices.reconcile_invoice_payment,
    )
    router.add(
        ["payment_intent.succeeded", "payment_intent.payment_failed", "payment_intent.canceled"],
        payments.reconcile_payment_intent,
    )
    router.add(["charge.succeeded"], payments.attach_charge)
    router.add(["charge.failed"], payments.fail_charge)
    router.add(["charge.dispute.created"], disputes.escalate_dispute)
    return router
