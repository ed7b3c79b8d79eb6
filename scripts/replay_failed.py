#!/usr/bin/env python3
"""Re-run webhook events stuck in ``failed`` from their stored payload.

Stripe stops redelivering after a few days; this is the operator's way to
finish events whose failure has since been fixed (provider outage, bad deploy).
"""
from __future__ import annotations

import argparse

from rich.console import Console
from rich.table import Table

from billsync.billing.errors import EventInFlightError, UnsupportedEventTypeError
from billsync.billing.ledger import Ledger
from billsync.billing.processor import WebhookProcessor
from billsync.config import settings
from billsync.db import SessionLocal
from billsync.logging import setup_logging

console = Console()

def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    p.add_argument("--limit", type=int, default=50)
    p.add_argument("--event-type", default=None, help="only replay this stripe event type")
    p.add_argument("--max-attempts", type=int, default=10, help="skip events that already failed this often")
    p.add_argument("--dry-run", action="store_true", help="list failed events without replaying")
    return p.parse_args()

def main() -> int:
    args = _parse_args()
    setup_logging(settings.log_level, json_logs=False)

    table = Table(title="failed webhook events")
    for col in ("event_id", "type", "attempts", "result", "detail"):
        table.add_column(col)

    failures = 0
    with SessionLocal() as db:
        records = Ledger(db).list_failed(limit=args.limit, event_type=args.event_type)
        processor = WebhookProcessor.from_settings(db)

        for record in records:
            row = [record.event_id, record.event_type, str(record.attempts)]
            if args.dry_run or record.attempts >= args.max_attempts:
                table.add_row(*row, "skipped", record.error or "")
                continue

            try:
                result = processor.replay(record)
            except UnsupportedEventTypeError:
                table.add_row(*row, "unsupported", "not supported")
                continue
            except EventInFlightError:
                table.add_row(*row, "locked", "another worker holds this event")
                continue
            except Exception as e:
                failures += 1
                table.add_row(*row, "[red]failed[/red]", f"{type(e).__name__}: {e}")
                continue

            table.add_row(*row, f"[green]{result.status}[/green]", result.action or "")

    console.print(table)
    return 1 if failures else 0

if __name__ == "__main__":
    raise SystemExit(main())
