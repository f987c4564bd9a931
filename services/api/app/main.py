"""Bouquet Bar order pipeline API service entrypoint."""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from services.api.app.db.database import env_flag
from services.api.app.db.init_db import init_db
from services.api.app.errors import PipelineError
from services.api.app.logging_setup import configure_logging
from services.api.app.routers.address import router as address_router
from services.api.app.routers.admin import router as admin_router
from services.api.app.routers.cart import router as cart_router
from services.api.app.routers.coupon import router as coupon_router
from services.api.app.routers.delivery import router as delivery_router
from services.api.app.routers.order import router as order_router
from services.api.app.routers.webhook import router as webhook_router
from services.api.app.services.background import TaskRunner
from services.api.app.services.messaging_factory import get_messaging_provider
from services.api.app.services.notifications import NotificationDispatcher
from services.api.app.services.scheduler import StatusScheduler, interval_from_env, rules_from_env
from services.api.app.services.sessions import SessionRegistry
from services.api.app.services.store import SqlStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Bouquet Bar API")

app.include_router(coupon_router)
app.include_router(delivery_router)
app.include_router(cart_router)
app.include_router(address_router)
app.include_router(order_router)
app.include_router(admin_router)
app.include_router(webhook_router)


def _register_dev_sessions(sessions: SessionRegistry) -> None:
    # Local development only: "token:user_id" pairs, comma separated.
    raw = os.getenv("BOUQUET_DEV_SESSIONS", "").strip()
    for pair in filter(None, (p.strip() for p in raw.split(","))):
        token, _, user_id = pair.partition(":")
        if token and user_id:
            sessions.register(token, user_id)


@app.exception_handler(PipelineError)
async def _pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    init_db()

    store = SqlStore()
    dispatcher = NotificationDispatcher(get_messaging_provider())
    scheduler = StatusScheduler(
        store,
        dispatcher,
        rules=rules_from_env(),
        interval=interval_from_env(),
    )

    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.scheduler = scheduler
    app.state.task_runner = TaskRunner(max_workers=int(os.getenv("BOUQUET_NOTIFY_WORKERS", "4")))
    app.state.sessions = SessionRegistry(
        ttl_seconds=float(os.getenv("BOUQUET_SESSION_TTL_SECONDS", "604800"))
    )

    _register_dev_sessions(app.state.sessions)

    if env_flag("BOUQUET_SCHEDULER_AUTOSTART", "true"):
        scheduler.start()
    logger.info("[STARTUP] Messaging provider: %s", dispatcher.provider.name)


@app.on_event("shutdown")
def _shutdown() -> None:
    app.state.scheduler.stop()
    app.state.task_runner.shutdown()
    app.state.dispatcher.close()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
