from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from packages.shared.schemas.events import WaiverEventV1
from services.api.app.services.bus_base import DisconnectCheck, opening_frames
from services.api.app.services.sse import event_frame, ping_frame, tick_frame
from services.api.app.services.store import RecordStore, VersionCounter

logger = logging.getLogger(__name__)


class PolledVersionBus:
    """Cross-process bus: every connection polls the shared version counter.

    Used when the webhook may land on a different process than the dashboard's stream.
    A version increase becomes a tick plus whatever the record store gained since the
    connection's cursor.
    """

    mode = "polled"

    def __init__(
        self,
        *,
        store: RecordStore,
        counter: VersionCounter,
        poll_seconds: float = 1.0,
        heartbeat_seconds: float = 15.0,
    ) -> None:
        self.store = store
        self.counter = counter
        self.poll_seconds = poll_seconds
        self.heartbeat_seconds = heartbeat_seconds
        self._connections = 0

    @property
    def connection_count(self) -> int:
        return self._connections

    async def publish(self, event: WaiverEventV1, *, seq: int | None = None) -> int | None:
        # The event is already in the record store; pollers pick it up from there.
        return await self.counter.bump()

    async def bump(self, reason: str) -> int | None:
        return await self.counter.bump()

    async def stream(
        self,
        *,
        since: int | None = None,
        is_disconnected: DisconnectCheck | None = None,
    ) -> AsyncIterator[str]:
        self._connections += 1
        logger.info(f"SSE: polled connection opened ({self._connections} live)")
        try:
            frames, version, cursor = await opening_frames(self.store, self.counter, since)
            for frame in frames:
                yield frame

            loop = asyncio.get_running_loop()
            last_ping = loop.time()
            while True:
                await asyncio.sleep(self.poll_seconds)
                if is_disconnected is not None and await is_disconnected():
                    break

                current = await self.counter.current()
                if current > version:
                    version = current
                    new_events, cursor = await self.store.read_since(cursor)
                    for stored in new_events:
                        yield event_frame(stored.event, stored.seq)
                    yield tick_frame(version, "change", cursor)

                if loop.time() - last_ping >= self.heartbeat_seconds:
                    last_ping = loop.time()
                    yield ping_frame()
        finally:
            self._connections -= 1
            logger.info(f"SSE: polled connection closed ({self._connections} live)")
