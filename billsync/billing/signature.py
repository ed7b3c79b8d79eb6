from __future__ import annotations

import hashlib
import hmac
import json
import time
from dataclasses import dataclass, field
from typing import Any

from billsync.billing.errors import AuthenticityError

DEFAULT_TOLERANCE_SECONDS = 300

@dataclass(frozen=True)
class VerifiedEvent:
    id: str
    type: str
    created: int | None
    data_object: dict[str, Any]
    payload: dict[str, Any] = field(repr=False)

def _parse_header(signature: str) -> tuple[int, list[str]]:
    # stripe signature: t=<ts>,v1=<hex>[,v1=<hex>...]
    parts: dict[str, list[str]] = {}
    for item in signature.split(","):
        if "=" not in item:
            continue
        k, v = item.split("=", 1)
        parts.setdefault(k.strip(), []).append(v.strip())

    ts_list = parts.get("t") or []
    v1_list = parts.get("v1") or []
    if not ts_list or not v1_list:
        raise AuthenticityError("invalid stripe-signature format")

    try:
        ts = int(ts_list[0])
    except ValueError:
        raise AuthenticityError("invalid stripe-signature timestamp") from None

    return ts, v1_list

def compute_signature(secret: str, payload: bytes, timestamp: int) -> str:
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()

def parse_event(payload: bytes) -> VerifiedEvent:
    try:
        body = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise AuthenticityError("invalid json") from None

    if not isinstance(body, dict):
        raise AuthenticityError("invalid json")
    return event_from_dict(body)

def event_from_dict(body: dict[str, Any]) -> VerifiedEvent:
    event_id = body.get("id")
    event_type = body.get("type")
    if not isinstance(event_id, str) or not event_id or not isinstance(event_type, str) or not event_type:
        raise AuthenticityError("invalid_stripe_event")

    created = body.get("created")
    data = body.get("data")
    obj = None
    if isinstance(data, dict):
        # stripe wraps the resource in data.object; flat data bodies are accepted as-is
        obj = data.get("object") if "object" in data else data

    return VerifiedEvent(
        id=event_id,
        type=event_type,
        created=created if isinstance(created, int) else None,
        data_object=obj if isinstance(obj, dict) else {},
        payload=body,
    )

def verify_event(
    payload: bytes,
    signature: str | None,
    secret: str,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: int | None = None,
) -> VerifiedEvent:
    if not signature:
        raise AuthenticityError("missing stripe-signature")

    ts, candidates = _parse_header(signature)

    now = int(time.time()) if now is None else now
    if abs(now - ts) > tolerance_seconds:
        raise AuthenticityError("stale stripe-signature")

    expected = compute_signature(secret, payload, ts)
    if not any(hmac.compare_digest(expected, cand) for cand in candidates):
        raise AuthenticityError("invalid stripe-signature")

    return parse_event(payload)

def signature_header(secret: str, payload: bytes, timestamp: int | None = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},v1={compute_signature(secret, payload, ts)}"
