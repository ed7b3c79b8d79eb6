from fastapi import APIRouter
from fastapi.responses import JSONResponse

from billsync.config import settings
from billsync.db import db_ping
from billsync.redis_client import redis_ping

router = APIRouter(tags=["health"])

def _webhook_secret_configured() -> bool:
    return bool(settings.STRIPE_WEBHOOK_SECRET) or not settings.webhook_signature_required

@router.get("/health")
def health() -> dict:
    return {"status": "ok"}

# readiness: db and signing secret are hard requirements, redis only backs the rate limiter
@router.get("/ready")
def ready():
    checks = {
        "db": db_ping(),
        "webhook_secret": _webhook_secret_configured(),
    }
    optional = {"redis": redis_ping()}

    ok = all(checks.values())
    body = {"status": "ok" if ok else "unready", "checks": {**checks, **optional}}

    # 200 when webhooks can be processed, 503 otherwise
    return JSONResponse(status_code=200 if ok else 503, content=body)
