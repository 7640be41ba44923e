from __future__ import annotations

from fastapi import APIRouter, Depends
from services.api.app.deps import get_app_settings
from services.api.app.models.waivers import ConfigResponse
from services.api.app.settings import Settings

router = APIRouter()


@router.get("/api/config", response_model=ConfigResponse)
def get_config(settings: Settings = Depends(get_app_settings)) -> ConfigResponse:
    return ConfigResponse(
        has_api_key=bool(settings.sw_api_key),
        has_intake_template=bool(settings.intake_template_id),
        has_liability_template=bool(settings.liability_template_id),
        base_url=settings.sw_base_url,
        kv_backend=settings.kv_backend,
        event_bus=settings.event_bus,
        waiver_client=settings.waiver_client,
        store_capacity=settings.store_capacity,
    )
