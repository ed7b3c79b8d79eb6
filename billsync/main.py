from fastapi import FastAPI

from billsync.config import settings
from billsync.logging import setup_logging
from billsync.routes.health import router as health_router
from billsync.routes.webhooks import router as webhooks_router

def create_app() -> FastAPI:
    setup_logging(settings.log_level, json_logs=settings.log_json, env=settings.app_env)
    app = FastAPI(title="billsync", version="0.1.0")
    app.include_router(health_router)
    app.include_router(webhooks_router)
    return app

app = create_app()
