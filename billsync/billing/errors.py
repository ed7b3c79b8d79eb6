from __future__ import annotations

class WebhookError(Exception):
    """Base for everything the webhook pipeline raises on purpose."""

class ConfigurationError(WebhookError):
    pass

class AuthenticityError(WebhookError):
    """Bad, missing or stale signature. Raised before anything is persisted."""

class InvalidEventPayloadError(WebhookError):
    """Signature was fine but the event body is not something we can reconcile."""

class UnsupportedEventTypeError(WebhookError):
    def __init__(self, event_type: str, event_id: str | None = None):
        super().__init__("not supported")
        self.event_type = event_type
        self.event_id = event_id

class DuplicateDeliveryError(WebhookError):
    """A concurrent delivery already inserted the ledger row for this event id."""

    def __init__(self, event_id: str):
        super().__init__(f"duplicate delivery for {event_id}")
        self.event_id = event_id

class EventInFlightError(WebhookError):
    """Another worker holds the ledger row lock for this event id."""

    def __init__(self, event_id: str):
        super().__init__(f"event {event_id} is being processed")
        self.event_id = event_id

class ProviderFetchError(WebhookError):
    def __init__(self, resource: str, resource_id: str, cause: Exception):
        super().__init__(f"failed to fetch {resource} {resource_id}: {cause}")
        self.resource = resource
        self.resource_id = resource_id
        self.cause = cause

class TransientStorageError(WebhookError):
    pass
