from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from uuid import uuid4

from packages.shared.schemas.events import WaiverEventV1
from services.api.app.services.bus_base import ConnectionState, DisconnectCheck, opening_frames
from services.api.app.services.sse import event_frame, ping_frame, tick_frame
from services.api.app.services.store import RecordStore, VersionCounter

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    # (seq, frame); seq is set on event frames only
    queue: asyncio.Queue[tuple[int | None, str]]
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    state: ConnectionState = ConnectionState.CONNECTING


class ConnectionRegistry:
    """Live SSE connections held by this process.

    Each connection owns a bounded queue. A connection that stops draining its queue is
    dropped on the next broadcast instead of holding frames forever.
    """

    def __init__(self, max_pending: int = 256) -> None:
        self._max_pending = max_pending
        self._connections: dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def register(self) -> Connection:
        conn = Connection(queue=asyncio.Queue(maxsize=self._max_pending))
        self._connections[conn.id] = conn
        logger.info(f"SSE: connection {conn.id} opened ({len(self)} live)")
        return conn

    def deregister(self, conn: Connection) -> None:
        conn.state = ConnectionState.CLOSED
        if self._connections.pop(conn.id, None) is not None:
            logger.info(f"SSE: connection {conn.id} closed ({len(self)} live)")

    def broadcast(self, frame: str, seq: int | None = None) -> int:
        delivered = 0
        for conn in list(self._connections.values()):
            try:
                conn.queue.put_nowait((seq, frame))
            except asyncio.QueueFull:
                logger.warning(f"SSE: dropping slow connection {conn.id}")
                self.deregister(conn)
                continue
            delivered += 1
        return delivered


class InProcessBus:
    mode = "inprocess"

    def __init__(
        self,
        *,
        store: RecordStore,
        counter: VersionCounter,
        registry: ConnectionRegistry,
        heartbeat_seconds: float = 15.0,
    ) -> None:
        self.store = store
        self.counter = counter
        self.registry = registry
        self.heartbeat_seconds = heartbeat_seconds

    @property
    def connection_count(self) -> int:
        return len(self.registry)

    async def publish(self, event: WaiverEventV1, *, seq: int | None = None) -> int | None:
        version = await self.counter.bump()
        self.registry.broadcast(event_frame(event, seq), seq)
        self.registry.broadcast(tick_frame(version or 0, "publish", seq))
        return version

    async def bump(self, reason: str) -> int | None:
        version = await self.counter.bump()
        self.registry.broadcast(tick_frame(version or 0, reason))
        return version

    async def stream(
        self,
        *,
        since: int | None = None,
        is_disconnected: DisconnectCheck | None = None,
    ) -> AsyncIterator[str]:
        # Register before the replay read so nothing published in between is missed.
        conn = self.registry.register()
        try:
            frames, _version, cursor = await opening_frames(self.store, self.counter, since)
            # Events published during the replay read are already in the replay.
            replayed_through = cursor if since is not None else None
            for frame in frames:
                yield frame
            if conn.state is ConnectionState.CONNECTING:
                conn.state = ConnectionState.STREAMING

            while conn.state is ConnectionState.STREAMING:
                if is_disconnected is not None and await is_disconnected():
                    break
                try:
                    seq, frame = await asyncio.wait_for(
                        conn.queue.get(), timeout=self.heartbeat_seconds
                    )
                except asyncio.TimeoutError:
                    seq, frame = None, ping_frame()
                if seq is not None and replayed_through is not None and seq <= replayed_through:
                    continue
                yield frame
        finally:
            self.registry.deregister(conn)
