from datetime import datetime
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from billsync.models.base import Base

class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid4)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
        onupdate=sa.func.now(),
    )

    # null until the first sync with stripe
    provider_subscription_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True, unique=True)
    provider_customer_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True, index=True)

    plan_code: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    status: Mapped[str] = mapped_column(sa.String(32), nullable=False)

    current_period_start: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    cancel_at_period_end: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, server_default=sa.false(), default=False
    )
    canceled_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    # stripe event.created of the newest event applied to this row
    last_event_created: Mapped[int | None] = mapped_column(sa.BigInteger(), nullable=True)

    @property
    def is_linked(self) -> bool:
        return self.provider_subscription_id is not None
