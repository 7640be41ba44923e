from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from packages.shared.schemas.events import SseEventTypeV1, WaiverEventV1


def format_frame(event: SseEventTypeV1 | str, data: Any, *, event_id: int | None = None) -> str:
    name = event.value if isinstance(event, SseEventTypeV1) else event
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {name}")
    lines.append(f"data: {json.dumps(data, separators=(',', ':'))}")
    return "\n".join(lines) + "\n\n"


def ping_frame() -> str:
    return format_frame(SseEventTypeV1.PING, {"ts": datetime.now(timezone.utc).isoformat()})


def tick_frame(version: int, reason: str, cursor: int | None = None) -> str:
    data: dict[str, Any] = {"version": version, "reason": reason}
    if cursor is not None:
        data["cursor"] = cursor
    return format_frame(SseEventTypeV1.TICK, data)


def event_frame(event: WaiverEventV1, seq: int | None = None) -> str:
    return format_frame(event.type.value, event.model_dump(mode="json"), event_id=seq)
