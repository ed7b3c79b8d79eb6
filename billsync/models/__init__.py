from billsync.models.base import Base
from billsync.models.invoice import Invoice
from billsync.models.payment import Payment
from billsync.models.subscription import Subscription
from billsync.models.webhook_event import WebhookEvent

__all__ = ["Base", "WebhookEvent", "Subscription", "Payment", "Invoice"]
