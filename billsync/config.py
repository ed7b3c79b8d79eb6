from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PLAN_PRICE_MAP = {
    "price_premium_monthly": "premium",
    "price_platinum_monthly": "platinum",
}

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"
    # false switches to plain text lines
    log_json: bool = True

    database_url: str = "postgresql+psycopg://app:app@db:5432/app"
    redis_url: str = "redis://redis:6379/0"
    redis_socket_timeout: float = 0.5

    STRIPE_API_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None
    stripe_max_network_retries: int = 2

    # signature check can only be turned off outside production
    webhook_signature_required: bool = True
    webhook_tolerance_seconds: int = 300

    # pull the full resource from stripe instead of trusting partial payloads
    fetch_provider_snapshots: bool = True

    # "reject" skips updates older than the last applied event, "overwrite" is last-write-wins
    stale_event_policy: str = "reject"

    # 200 for event types we will never handle, so stripe stops redelivering
    ack_unsupported_events: bool = True

    plan_price_map: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_PLAN_PRICE_MAP))
    default_plan_code: str = "basic"

    # rate limiting (redis)
    rate_limit_enabled: bool = True
    rate_limit_webhooks_per_min: int = 600

settings = Settings()
