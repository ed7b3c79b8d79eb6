from __future__ import annotations

import json
import os
import time
import uuid
from typing import Any

import requests
from rich import print

from billsync.billing.signature import signature_header
from billsync.db import SessionLocal
from billsync.models.payment import Payment

BASE = os.getenv("API_BASE_URL", "http://127.0.0.1:8000")
SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "whsec_demo")

def send(event: dict[str, Any]) -> requests.Response:
    raw = json.dumps(event).encode("utf-8")
    headers = {
        "content-type": "application/json",
        "stripe-signature": signature_header(SECRET, raw),
    }
    return requests.post(f"{BASE}/webhooks/stripe", headers=headers, data=raw, timeout=10)

def seed_payment(intent_id: str) -> None:
    # payments are created by the checkout flow; fake one so the webhook has something to update
    with SessionLocal() as db:
        db.add(Payment(provider_payment_intent_id=intent_id, amount=1999, currency="usd", status="pending"))
        db.commit()

def event(event_type: str, obj: dict[str, Any], event_id: str | None = None) -> dict[str, Any]:
    return {
        "id": event_id or f"evt_demo_{uuid.uuid4().hex[:12]}",
        "type": event_type,
        "created": int(time.time()),
        "data": {"object": obj},
    }

def main() -> None:
    run = uuid.uuid4().hex[:8]
    sub_id = f"sub_demo_{run}"
    intent_id = f"pi_demo_{run}"

    created = event(
        "customer.subscription.created",
        {
            "id": sub_id,
            "customer": f"cus_demo_{run}",
            "status": "active",
            "items": {"data": [{"price": {"id": "price_premium_monthly"}}]},
            "current_period_start": int(time.time()),
            "current_period_end": int(time.time()) + 30 * 86400,
        },
    )
    r = send(created)
    print("[bold]subscription.created[/bold]", r.status_code, r.json())

    r = send(created)
    print("[bold]replay[/bold]", r.status_code, r.json())

    seed_payment(intent_id)
    r = send(event("payment_intent.succeeded", {"id": intent_id}))
    print("[bold]payment_intent.succeeded[/bold]", r.status_code, r.json())

    r = send(event("charge.dispute.created", {"id": f"dp_{run}", "charge": f"ch_{run}", "amount": 1999, "reason": "fraudulent"}))
    print("[bold]charge.dispute.created[/bold]", r.status_code, r.json())

    r = send(event("foo.bar", {"id": "x"}))
    print("[bold]foo.bar[/bold]", r.status_code, r.json())

if __name__ == "__main__":
    main()
