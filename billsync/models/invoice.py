from datetime import datetime
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from billsync.models.base import Base

class Invoice(Base):
    __tablename__ = "invoices"

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

    provider_invoice_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True, unique=True)
    provider_subscription_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True, index=True)

    status: Mapped[str] = mapped_column(sa.String(16), nullable=False)
    amount: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False, server_default="0")
    currency: Mapped[str] = mapped_column(sa.String(3), nullable=False, server_default="usd")
    due_date: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    hosted_invoice_url: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    invoice_pdf_url: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)

    last_event_created: Mapped[int | None] = mapped_column(sa.BigInteger(), nullable=True)
