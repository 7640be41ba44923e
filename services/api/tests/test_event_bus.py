from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
from packages.shared.schemas.events import EventKindV1, ParticipantV1, WaiverEventV1
from services.api.app.services.bus_base import ConnectionState
from services.api.app.services.bus_factory import get_event_bus
from services.api.app.services.bus_inprocess import ConnectionRegistry, InProcessBus
from services.api.app.services.bus_polled import PolledVersionBus
from services.api.app.services.kv_sql import SqlKeyValueStore
from services.api.app.services.sse import event_frame, format_frame
from services.api.app.services.store import RecordStore, VersionCounter
from services.api.app.settings import Settings


@pytest.fixture()
def parts(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> tuple[RecordStore, VersionCounter]:
    db_path = tmp_path / "waiverdesk_bus.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{db_path}")
    monkeypatch.setenv("WAIVERDESK_DB_AUTO_CREATE", "true")

    from services.api.app.db.init_db import init_db

    init_db()
    kv = SqlKeyValueStore()
    return RecordStore(kv, key="events", capacity=50), VersionCounter(kv, key="version")


def _event(waiver_id: str) -> WaiverEventV1:
    return WaiverEventV1(
        type=EventKindV1.INTAKE,
        waiver_id=waiver_id,
        participants=[ParticipantV1(participant_index=0, first_name="Ana", last_name="Lopez")],
    )


def _parse(frame: str) -> tuple[str, dict]:
    fields = dict(line.split(": ", 1) for line in frame.strip().splitlines())
    return fields["event"], json.loads(fields["data"])


def test_format_frame() -> None:
    assert format_frame("tick", {"version": 1}) == 'event: tick\ndata: {"version":1}\n\n'
    assert format_frame("intake", {}, event_id=4).startswith("id: 4\nevent: intake\n")


def test_inprocess_stream_connect_publish_and_close(parts) -> None:
    store, counter = parts
    registry = ConnectionRegistry()
    bus = InProcessBus(store=store, counter=counter, registry=registry, heartbeat_seconds=5)

    async def run() -> tuple[list[tuple[str, dict]], int, int]:
        stream = bus.stream()
        frames = [await stream.__anext__(), await stream.__anext__()]
        live = len(registry)

        event = _event("W1")
        seq = await store.append(event)
        await bus.publish(event, seq=seq)
        frames.append(await stream.__anext__())
        frames.append(await stream.__anext__())

        await stream.aclose()
        return [_parse(f) for f in frames], live, len(registry)

    frames, live, after_close = asyncio.run(run())

    assert [name for name, _ in frames] == ["ping", "tick", "intake", "tick"]
    assert frames[1][1]["reason"] == "connect"
    assert frames[2][1]["waiver_id"] == "W1"
    assert frames[3][1] == {"version": 1, "reason": "publish", "cursor": 1}
    assert live == 1
    assert after_close == 0


def test_inprocess_replays_after_cursor(parts) -> None:
    store, counter = parts
    bus = InProcessBus(store=store, counter=counter, registry=ConnectionRegistry())

    async def run() -> list[str]:
        for waiver_id in ("W1", "W2", "W3"):
            await store.append(_event(waiver_id))
        stream = bus.stream(since=1)
        frames = [await stream.__anext__() for _ in range(4)]
        await stream.aclose()
        return frames

    frames = [_parse(f) for f in asyncio.run(run())]

    assert [name for name, _ in frames] == ["ping", "tick", "intake", "intake"]
    assert [data["waiver_id"] for _, data in frames[2:]] == ["W2", "W3"]
    assert frames[1][1]["cursor"] == 3



def test_inprocess_replay_skips_frames_queued_during_replay(parts) -> None:
    store, counter = parts
    registry = ConnectionRegistry()
    bus = InProcessBus(store=store, counter=counter, registry=registry)

    async def run() -> list[str]:
        first, second = _event("W1"), _event("W2")
        await store.append(first)
        seq = await store.append(second)
        stream = bus.stream(since=0)
        frames = [await stream.__anext__()]
        # W2 was appended before the replay read but its broadcast lands afterwards.
        registry.broadcast(event_frame(second, seq), seq)
        third = _event("W3")
        await bus.publish(third, seq=await store.append(third))
        frames.extend([await stream.__anext__() for _ in range(4)])
        await stream.aclose()
        return frames

    frames = [_parse(f) for f in asyncio.run(run())]

    assert [name for name, _ in frames] == ["ping", "tick", "intake", "intake", "intake"]
    assert [data["waiver_id"] for _, data in frames[2:]] == ["W1", "W2", "W3"]


def test_inprocess_heartbeat_when_idle(parts) -> None:
    store, counter = parts
    bus = InProcessBus(store=store, counter=counter, registry=ConnectionRegistry(), heartbeat_seconds=0.01)

    async def run() -> str:
        stream = bus.stream()
        await stream.__anext__()
        await stream.__anext__()
        frame = await stream.__anext__()
        await stream.aclose()
        return frame

    assert _parse(asyncio.run(run()))[0] == "ping"


def test_stream_stops_when_client_disconnects(parts) -> None:
    store, counter = parts
    registry = ConnectionRegistry()
    bus = InProcessBus(store=store, counter=counter, registry=registry, heartbeat_seconds=0.01)

    async def gone() -> bool:
        return True

    async def run() -> list[str]:
        return [frame async for frame in bus.stream(is_disconnected=gone)]

    frames = asyncio.run(run())

    assert len(frames) == 2
    assert len(registry) == 0


def test_slow_connection_is_dropped_without_affecting_others() -> None:
    registry = ConnectionRegistry(max_pending=1)
    fast = registry.register()
    slow = registry.register()

    registry.broadcast("a")
    fast.queue.get_nowait()
    delivered = registry.broadcast("b")

    assert delivered == 1
    assert len(registry) == 1
    assert slow.state is ConnectionState.CLOSED
    assert fast.queue.get_nowait() == (None, "b")


def test_bump_broadcasts_tick() -> None:
    registry = ConnectionRegistry()

    async def run(store: RecordStore, counter: VersionCounter) -> str:
        bus = InProcessBus(store=store, counter=counter, registry=registry)
        conn = registry.register()
        await bus.bump("hidden")
        return conn.queue.get_nowait()[1]

    class _Counter:
        async def bump(self) -> int:
            return 7

    frame = asyncio.run(run(None, _Counter()))  # type: ignore[arg-type]

    assert _parse(frame) == ("tick", {"version": 7, "reason": "hidden"})


def test_polled_bus_emits_new_events_and_tick(parts) -> None:
    store, counter = parts
    bus = PolledVersionBus(store=store, counter=counter, poll_seconds=0.01, heartbeat_seconds=60)

    async def run() -> tuple[list[tuple[str, dict]], int, int]:
        stream = bus.stream()
        frames = [await stream.__anext__(), await stream.__anext__()]
        live = bus.connection_count

        event = _event("W9")
        seq = await store.append(event)
        await bus.publish(event, seq=seq)
        frames.append(await stream.__anext__())
        frames.append(await stream.__anext__())

        await stream.aclose()
        return [_parse(f) for f in frames], live, bus.connection_count

    frames, live, after_close = asyncio.run(run())

    assert [name for name, _ in frames] == ["ping", "tick", "intake", "tick"]
    assert frames[2][1]["waiver_id"] == "W9"
    assert frames[3][1] == {"version": 1, "reason": "change", "cursor": 1}
    assert live == 1
    assert after_close == 0


def test_bus_factory_modes(parts) -> None:
    store, counter = parts

    assert get_event_bus(Settings(event_bus="inprocess"), store=store, counter=counter).mode == "inprocess"
    assert get_event_bus(Settings(event_bus="polled"), store=store, counter=counter).mode == "polled"
    with pytest.raises(ValueError, match="Unknown WAIVERDESK_EVENT_BUS"):
        get_event_bus(Settings(event_bus="carrier-pigeon"), store=store, counter=counter)
