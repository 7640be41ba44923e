from __future__ import annotations

from services.api.app.services.bus_base import EventBus
from services.api.app.services.bus_inprocess import ConnectionRegistry, InProcessBus
from services.api.app.services.bus_polled import PolledVersionBus
from services.api.app.services.store import RecordStore, VersionCounter
from services.api.app.settings import Settings


def get_event_bus(
    settings: Settings,
    *,
    store: RecordStore,
    counter: VersionCounter,
    registry: ConnectionRegistry | None = None,
) -> EventBus:
    mode = settings.event_bus

    if mode in ("inprocess", "memory", "local"):
        return InProcessBus(
            store=store,
            counter=counter,
            registry=registry or ConnectionRegistry(),
            heartbeat_seconds=settings.heartbeat_seconds,
        )

    if mode in ("polled", "poll", "version"):
        return PolledVersionBus(
            store=store,
            counter=counter,
            poll_seconds=settings.poll_seconds,
            heartbeat_seconds=settings.heartbeat_seconds,
        )

    raise ValueError(f"Unknown WAIVERDESK_EVENT_BUS={mode!r}. Expected inprocess or polled.")
