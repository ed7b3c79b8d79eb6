"""ledger attempts + last applied event per entity

Revision ID: 0003_attempts_and_event_versions
Revises: 0002_webhook_events
Create Date: 2026-10-15
"""
from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op

revision = "0003_attempts_and_event_versions"
down_revision = "0002_webhook_events"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

def upgrade() -> None:
    op.add_column(
        "webhook_events",
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
    )

    # stripe event.created of the newest event applied, for the stale-write guard
    op.add_column("subscriptions", sa.Column("last_event_created", sa.BigInteger(), nullable=True))
    op.add_column("invoices", sa.Column("last_event_created", sa.BigInteger(), nullable=True))

    # backfill: anything already finished went through at least one attempt
    op.execute("update webhook_events set attempts = 1 where status in ('processed', 'failed')")

def downgrade() -> None:
    op.drop_column("invoices", "last_event_created")
    op.drop_column("subscriptions", "last_event_created")
    op.drop_column("webhook_events", "attempts")
