from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from packages.shared.schemas.events import WaiverEventV1
from pydantic import ValidationError
from services.api.app.services.kv_base import KeyValueStore, KeyValueStoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StoredEvent:
    seq: int
    event: WaiverEventV1


class RecordStore:
    """Bounded, append-only log of normalized waiver events.

    Writes are at-most-once: a failed append is logged and dropped, because the query
    endpoints can always rebuild from the upstream API. Reads never raise; an unavailable
    store looks empty.
    """

    def __init__(self, kv: KeyValueStore, *, key: str, capacity: int) -> None:
        self._kv = kv
        self.key = key
        self.capacity = capacity

    async def append(self, event: WaiverEventV1) -> int | None:
        payload = json.dumps(event.model_dump(mode="json"), separators=(",", ":"))
        try:
            seq = await self._kv.append_capped(self.key, payload, self.capacity)
        except KeyValueStoreError as e:
            logger.error(f"RecordStore: append failed for waiver {event.waiver_id}: {e}")
            return None
        logger.info(f"RecordStore: appended {event.type.value} {event.waiver_id} seq={seq}")
        return seq

    async def read_since(self, cursor: int) -> tuple[list[StoredEvent], int]:
        try:
            window = await self._kv.read_after(self.key, cursor)
        except KeyValueStoreError as e:
            logger.warning(f"RecordStore: read_since({cursor}) failed: {e}")
            return [], cursor

        out: list[StoredEvent] = []
        for seq, raw in window.entries:
            event = _decode(raw)
            if event is not None:
                out.append(StoredEvent(seq=seq, event=event))
        return out, window.last_seq

    async def read_all(self) -> list[WaiverEventV1]:
        stored, _cursor = await self.read_since(0)
        return [s.event for s in stored]

    async def cursor(self) -> int:
        _stored, cursor = await self.read_since(0)
        return cursor


class VersionCounter:
    """Cheap "something changed" signal shared by every process."""

    def __init__(self, kv: KeyValueStore, *, key: str) -> None:
        self._kv = kv
        self.key = key

    async def bump(self) -> int | None:
        try:
            return await self._kv.incr(self.key)
        except KeyValueStoreError as e:
            logger.warning(f"VersionCounter: bump failed: {e}")
            return None

    async def current(self) -> int:
        try:
            return await self._kv.get_int(self.key)
        except KeyValueStoreError as e:
            logger.warning(f"VersionCounter: read failed: {e}")
            return 0


class HiddenSet:
    """Row keys an operator has hidden from the dashboard."""

    def __init__(self, kv: KeyValueStore, *, key: str) -> None:
        self._kv = kv
        self.key = key

    async def members(self) -> set[str]:
        try:
            return set(await self._kv.set_members(self.key))
        except KeyValueStoreError as e:
            logger.warning(f"HiddenSet: read failed: {e}")
            return set()

    async def hide(self, row_key: str) -> bool:
        return await self._kv.set_add(self.key, row_key)

    async def show(self, row_key: str) -> bool:
        return await self._kv.set_remove(self.key, row_key)

    async def contains(self, row_key: str) -> bool:
        return await self._kv.set_contains(self.key, row_key)


def _decode(raw: str) -> WaiverEventV1 | None:
    try:
        return WaiverEventV1.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        logger.warning(f"RecordStore: skipping unreadable entry: {e}")
        return None

