from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from services.api.app.deps import get_app_settings, get_client, get_hidden_set, get_record_store
from services.api.app.models.waivers import (
    LiabilityLatestResponse,
    OpenIntakesResponse,
    OpenLiabilitiesResponse,
)
from services.api.app.services import reconcile
from services.api.app.services.store import HiddenSet, RecordStore
from services.api.app.services.waiver_base import WaiverClient
from services.api.app.settings import Settings
from services.api.app.waivers.ranges import parse_range

router = APIRouter()


@router.get("/api/open-intakes", response_model=OpenIntakesResponse, response_model_exclude_none=True)
async def open_intakes(
    from_: str | None = Query(default=None, alias="from"),
    to: str | None = None,
    include_hidden: bool = False,
    source: str | None = None,
    settings: Settings = Depends(get_app_settings),
    store: RecordStore = Depends(get_record_store),
    hidden: HiddenSet = Depends(get_hidden_set),
    client: WaiverClient = Depends(get_client),
) -> OpenIntakesResponse:
    return await reconcile.open_intakes(
        settings=settings,
        store=store,
        hidden=hidden,
        client=client,
        time_range=parse_range(from_, to),
        upstream_range=parse_range(from_, to, default_days=settings.lookback_days),
        include_hidden=include_hidden,
        force_upstream=source == "upstream",
    )


@router.get(
    "/api/open-liabilities",
    response_model=OpenLiabilitiesResponse,
    response_model_exclude_none=True,
)
async def open_liabilities(
    from_: str | None = Query(default=None, alias="from"),
    to: str | None = None,
    settings: Settings = Depends(get_app_settings),
    client: WaiverClient = Depends(get_client),
) -> OpenLiabilitiesResponse:
    return await reconcile.open_liabilities(
        settings=settings,
        client=client,
        time_range=parse_range(from_, to, default_days=1),
    )


@router.get("/api/liability-latest", response_model=LiabilityLatestResponse)
async def liability_latest(
    email: str = "",
    from_: str | None = Query(default=None, alias="from"),
    to: str | None = None,
    settings: Settings = Depends(get_app_settings),
    client: WaiverClient = Depends(get_client),
) -> LiabilityLatestResponse:
    return await reconcile.liability_latest(
        email,
        settings=settings,
        client=client,
        time_range=parse_range(from_, to, default_days=reconcile.LATEST_LIABILITY_DAYS),
    )


@router.get("/api/intake-details")
async def intake_details(
    waiver_id: str | None = Query(default=None, alias="waiverId"),
    waiver_id_snake: str | None = Query(default=None, alias="waiver_id"),
    id_: str | None = Query(default=None, alias="id"),
    settings: Settings = Depends(get_app_settings),
    client: WaiverClient = Depends(get_client),
) -> dict[str, Any]:
    wid = (waiver_id or waiver_id_snake or id_ or "").strip()
    return await reconcile.intake_details(wid, settings=settings, client=client)
