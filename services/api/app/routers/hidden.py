from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from services.api.app.deps import get_bus, get_hidden_set
from services.api.app.models.waivers import HiddenListResponse, HiddenRequest, HiddenResponse
from services.api.app.services.bus_base import EventBus
from services.api.app.services.kv_base import KeyValueStoreError
from services.api.app.services.store import HiddenSet

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/hidden", response_model=HiddenListResponse, response_model_exclude_none=True)
async def list_hidden(hidden: HiddenSet = Depends(get_hidden_set)) -> HiddenListResponse:
    return HiddenListResponse(ok=True, hidden=sorted(await hidden.members()))


@router.post("/api/hidden", response_model=HiddenResponse, response_model_exclude_none=True)
async def update_hidden(
    payload: HiddenRequest,
    hidden: HiddenSet = Depends(get_hidden_set),
    bus: EventBus = Depends(get_bus),
) -> HiddenResponse:
    key = payload.key.strip()
    try:
        action = payload.action
        if action == "toggle":
            action = "show" if await hidden.contains(key) else "hide"
        if action == "hide":
            await hidden.hide(key)
        else:
            await hidden.show(key)
    except KeyValueStoreError as e:
        logger.warning(f"Hidden: {payload.action} {key} failed: {e}")
        return HiddenResponse(ok=False, key=key, error=str(e))

    version = await bus.bump("hidden")
    return HiddenResponse(ok=True, key=key, hidden=action == "hide", version=version)
