from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Protocol

from billsync.logging import get_logger

logger = get_logger(__name__)

@dataclass(frozen=True)
class DisputeAlert:
    dispute_id: str
    charge_id: str | None
    amount: int
    currency: str | None
    reason: str | None
    event_id: str

class AlertSink(Protocol):
    def dispute_opened(self, alert: DisputeAlert) -> None: ...

class LogAlertSink:
    """Disputes need a human decision; this just makes them loud in the logs."""

    def dispute_opened(self, alert: DisputeAlert) -> None:
        logger.warning("charge dispute created", extra={"extra_data": asdict(alert)})
