"""Waiver Desk API service entrypoint."""

import logging
import os

from fastapi import FastAPI

from services.api.app.db.init_db import init_db
from services.api.app.routers.config import router as config_router
from services.api.app.routers.hidden import router as hidden_router
from services.api.app.routers.queries import router as queries_router
from services.api.app.routers.stream import router as stream_router
from services.api.app.routers.webhook import router as webhook_router
from services.api.app.services.bus_factory import get_event_bus
from services.api.app.services.bus_inprocess import ConnectionRegistry
from services.api.app.services.kv_factory import get_kv_store
from services.api.app.services.store import HiddenSet, RecordStore, VersionCounter
from services.api.app.settings import get_settings

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Waiver Desk API")

app.include_router(webhook_router)
app.include_router(stream_router)
app.include_router(queries_router)
app.include_router(hidden_router)
app.include_router(config_router)


@app.on_event("startup")
def _startup() -> None:
    settings = get_settings()
    if settings.kv_backend in ("sql", "sqlite", "db"):
        init_db()

    kv = get_kv_store(settings)
    store = RecordStore(kv, key=settings.stream_key, capacity=settings.store_capacity)
    counter = VersionCounter(kv, key=settings.version_key)

    app.state.kv = kv
    app.state.record_store = store
    app.state.hidden_set = HiddenSet(kv, key=settings.hidden_key)
    app.state.registry = ConnectionRegistry()
    app.state.bus = get_event_bus(
        settings, store=store, counter=counter, registry=app.state.registry
    )
    logger.info(
        f"Waiver Desk API started (kv={kv.backend}, bus={app.state.bus.mode}, "
        f"waivers={settings.waiver_client})"
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    kv = getattr(app.state, "kv", None)
    if kv is not None:
        await kv.close()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
