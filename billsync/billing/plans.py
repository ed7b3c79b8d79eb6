from __future__ import annotations

from collections.abc import Mapping

from billsync.billing.errors import ConfigurationError
from billsync.config import settings
from billsync.logging import get_logger

logger = get_logger(__name__)

class PlanMapper:
    """Static stripe price id -> internal plan code table with a required fallback."""

    def __init__(self, price_map: Mapping[str, str], default_plan_code: str):
        if not default_plan_code:
            raise ConfigurationError("default plan code is required")
        self.price_map = dict(price_map)
        self.default_plan_code = default_plan_code

    def plan_for_price(self, price_id: str | None) -> str:
        if price_id and price_id in self.price_map:
            return self.price_map[price_id]
        # catalog drift should not block reconciliation
        logger.warning(
            "unknown stripe price, using default plan",
            extra={"extra_data": {"price_id": price_id, "plan_code": self.default_plan_code}},
        )
        return self.default_plan_code

    @classmethod
    def from_settings(cls) -> PlanMapper:
        return cls(settings.plan_price_map, settings.default_plan_code)
