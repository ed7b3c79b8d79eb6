from datetime import datetime
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from billsync.models.base import Base

class WebhookEvent(Base):
    __tablename__ = "webhook_events"
    __table_args__ = (
        sa.UniqueConstraint("provider", "event_id", name="uq_webhook_events_provider_event_id"),
    )

    id: Mapped[UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid4)

    provider: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    event_id: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(sa.String(255), nullable=False)

    received_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )
    processed_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, server_default="pending", index=True)
    error: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    attempts: Mapped[int] = mapped_column(sa.Integer(), nullable=False, server_default="0", default=0)

    payload: Mapped[dict] = mapped_column(sa.JSON().with_variant(JSONB(), "postgresql"), nullable=False)

    @property
    def is_processed(self) -> bool:
        return self.status == "processed"

    @property
    def is_failed(self) -> bool:
        return self.status == "failed"
