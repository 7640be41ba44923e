from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Request
from services.api.app.services.bus_base import EventBus
from services.api.app.services.store import HiddenSet, RecordStore
from services.api.app.services.waiver_base import WaiverClient
from services.api.app.services.waiver_factory import get_waiver_client
from services.api.app.settings import Settings, get_settings


def get_app_settings() -> Settings:
    return get_settings()


def get_record_store(request: Request) -> RecordStore:
    return request.app.state.record_store


def get_hidden_set(request: Request) -> HiddenSet:
    return request.app.state.hidden_set


def get_bus(request: Request) -> EventBus:
    return request.app.state.bus


async def get_client() -> AsyncIterator[WaiverClient]:
    client = get_waiver_client(get_settings())
    try:
        yield client
    finally:
        await client.aclose()
