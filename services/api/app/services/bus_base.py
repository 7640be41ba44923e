from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Protocol

from packages.shared.schemas.events import WaiverEventV1
from services.api.app.services.sse import event_frame, ping_frame, tick_frame
from services.api.app.services.store import RecordStore, VersionCounter

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"


class EventBus(Protocol):
    """Fan-out of waiver events and change ticks to dashboard connections."""

    mode: str

    @property
    def connection_count(self) -> int: ...

    async def publish(self, event: WaiverEventV1, *, seq: int | None = None) -> int | None: ...

    async def bump(self, reason: str) -> int | None: ...

    def stream(
        self,
        *,
        since: int | None = None,
        is_disconnected: DisconnectCheck | None = None,
    ) -> AsyncIterator[str]: ...


async def opening_frames(
    store: RecordStore,
    counter: VersionCounter,
    since: int | None,
) -> tuple[list[str], int, int]:
    """Frames every new connection gets: a ping, a connect tick, then any replay.

    Returns (frames, version, cursor).
    """

    version = await counter.current()
    if since is None:
        cursor = await store.cursor()
        replay = []
    else:
        replay, cursor = await store.read_since(since)

    frames = [ping_frame(), tick_frame(version, "connect", cursor)]
    frames.extend(event_frame(s.event, s.seq) for s in replay)
    if replay:
        logger.info(f"SSE: replaying {len(replay)} events after cursor {since}")
    return frames, version, cursor
