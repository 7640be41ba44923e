from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from services.api.app.deps import get_app_settings, get_bus, get_client, get_record_store
from services.api.app.models.waivers import WebhookAck
from services.api.app.services.bus_base import EventBus
from services.api.app.services.ingest import decode_body, ingest_webhook
from services.api.app.services.store import RecordStore
from services.api.app.services.waiver_base import WaiverClient
from services.api.app.settings import Settings

router = APIRouter()


@router.post("/api/sw-webhook", response_model=WebhookAck, response_model_exclude_none=True)
async def sw_webhook(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    client: WaiverClient = Depends(get_client),
    store: RecordStore = Depends(get_record_store),
    bus: EventBus = Depends(get_bus),
) -> WebhookAck:
    body = decode_body(await request.body())
    return await ingest_webhook(body, settings=settings, client=client, store=store, bus=bus)
