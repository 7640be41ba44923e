from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from services.api.app.deps import get_bus
from services.api.app.services.bus_base import EventBus

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _resume_cursor(since: int | None, last_event_id: str | None) -> int | None:
    if since is not None:
        return max(0, since)
    if last_event_id and last_event_id.strip().isdigit():
        return int(last_event_id.strip())
    return None


@router.get("/api/stream")
async def stream(
    request: Request,
    since: int | None = None,
    bus: EventBus = Depends(get_bus),
) -> StreamingResponse:
    cursor = _resume_cursor(since, request.headers.get("last-event-id"))
    frames = bus.stream(since=cursor, is_disconnected=request.is_disconnected)
    return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)
