from datetime import datetime
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from billsync.models.base import Base

class Payment(Base):
    __tablename__ = "payments"

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

    # null until the intent is confirmed with stripe
    provider_payment_intent_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True, unique=True)
    provider_charge_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)

    amount: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False)
    currency: Mapped[str] = mapped_column(sa.String(3), nullable=False, server_default="usd")
    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, server_default="pending")
    failure_reason: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
