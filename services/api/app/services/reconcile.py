"""Open-intake queries: the record store when it has data, the waiver API otherwise."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from packages.shared.schemas.events import EventKindV1, WaiverEventV1
from services.api.app.models.waivers import (
    LiabilityLatestResponse,
    LiabilityRow,
    OpenCounts,
    OpenIntakesResponse,
    OpenLiabilitiesResponse,
)
from services.api.app.services.store import HiddenSet, RecordStore
from services.api.app.services.waiver_base import WaiverClient, WaiverClientError
from services.api.app.settings import Settings
from services.api.app.waivers.matcher import (
    compute_open_participants,
    parse_timestamp,
    summarize,
)
from services.api.app.waivers.normalizer import (
    FIRST_NAME_PATHS,
    LAST_NAME_PATHS,
    WAIVER_ID_PATHS,
    extract_external_tag,
    normalize,
    normalize_timestamp,
)
from services.api.app.waivers.ranges import TimeRange, format_upstream

logger = logging.getLogger(__name__)

DETAIL_CONCURRENCY = 4
LATEST_LIABILITY_DAYS = 90


def _normalize(
    raw: Mapping[str, Any],
    kind: EventKindV1,
    *,
    settings: Settings,
    template_id: str,
) -> WaiverEventV1 | None:
    try:
        return normalize(raw, kind, template_id=template_id, field_ids=settings.field_ids)
    except Exception:
        waiver_id = _summary_id(raw) if isinstance(raw, Mapping) else ""
        logger.exception(f"Could not normalize {kind.value} waiver {waiver_id or '?'}")
        return None


def _in_range(event: WaiverEventV1, time_range: TimeRange | None) -> bool:
    return time_range is None or time_range.contains(parse_timestamp(event.signed_on))


def select_window(events: list[WaiverEventV1], time_range: TimeRange | None) -> list[WaiverEventV1]:
    """Intakes inside the range plus every liability.

    A liability signed outside the range still closes an intake inside it.
    """

    return [
        e
        for e in events
        if e.type == EventKindV1.LIABILITY or _in_range(e, time_range)
    ]


async def open_intakes(
    *,
    settings: Settings,
    store: RecordStore,
    hidden: HiddenSet,
    client: WaiverClient,
    time_range: TimeRange | None,
    upstream_range: TimeRange,
    include_hidden: bool = False,
    force_upstream: bool = False,
) -> OpenIntakesResponse:
    events: list[WaiverEventV1] = []
    if not force_upstream:
        events = select_window(await store.read_all(), time_range)

    if any(e.type == EventKindV1.INTAKE for e in events):
        response = _build(events, source="store")
    else:
        response = await _from_upstream(settings, client, upstream_range)

    if include_hidden or not response.rows:
        return response

    hidden_keys = await hidden.members()
    visible = [r for r in response.rows if r.row_key not in hidden_keys]
    response.counts.hidden = len(response.rows) - len(visible)
    response.rows = visible
    return response


def _build(
    events: list[WaiverEventV1],
    *,
    source: str,
    error: str | None = None,
) -> OpenIntakesResponse:
    rows = compute_open_participants(events)
    return OpenIntakesResponse(
        rows=rows,
        counts=OpenCounts(**summarize(events, rows)),
        source=source,
        error=error,
    )


async def _from_upstream(
    settings: Settings,
    client: WaiverClient,
    time_range: TimeRange,
) -> OpenIntakesResponse:
    missing = settings.missing_waiver_config()
    if missing:
        return OpenIntakesResponse(
            source="upstream",
            error=f"Missing configuration ({' / '.join(missing)})",
        )

    # Liabilities are listed up to now: they may be signed after the intake window.
    now = datetime.now(timezone.utc)
    liability_range = TimeRange(start=time_range.start, end=max(time_range.end, now))

    try:
        intake_list, liability_list = await asyncio.gather(
            client.list_waivers(
                settings.intake_template_id,
                time_range.start,
                time_range.end,
                max_pages=settings.max_pages,
            ),
            client.list_waivers(
                settings.liability_template_id,
                liability_range.start,
                liability_range.end,
                max_pages=settings.max_pages,
            ),
        )
    except WaiverClientError as e:
        logger.warning(f"Open intakes: upstream listing failed: {e}")
        return OpenIntakesResponse(source="upstream", error=str(e))

    intakes, failed = await _fetch_intakes(settings, client, intake_list)
    liabilities = [
        e
        for e in (
            _normalize(
                summary,
                EventKindV1.LIABILITY,
                settings=settings,
                template_id=settings.liability_template_id,
            )
            for summary in liability_list
        )
        if e is not None
    ]

    error = f"{failed} intake waiver(s) could not be loaded" if failed else None
    return _build([*intakes, *liabilities], source="upstream", error=error)


async def _fetch_intakes(
    settings: Settings,
    client: WaiverClient,
    summaries: list[Mapping[str, Any]],
) -> tuple[list[WaiverEventV1], int]:
    semaphore = asyncio.Semaphore(DETAIL_CONCURRENCY)

    async def fetch(waiver_id: str) -> WaiverEventV1 | None:
        async with semaphore:
            try:
                detail = await client.fetch_waiver(waiver_id)
            except WaiverClientError as e:
                logger.warning(f"Open intakes: detail fetch failed for {waiver_id}: {e}")
                return None
        return _normalize(
            detail,
            EventKindV1.INTAKE,
            settings=settings,
            template_id=settings.intake_template_id,
        )

    ids = [_summary_id(s) for s in summaries]
    results = await asyncio.gather(*(fetch(i) for i in ids if i))
    events = [e for e in results if e is not None]
    return events, len(results) - len(events)


def _summary_id(summary: Mapping[str, Any]) -> str:
    for (key,) in WAIVER_ID_PATHS:
        value = summary.get(key)
        if value:
            return str(value)
    return ""


def _summary_field(summary: Mapping[str, Any], paths: tuple[tuple[str], ...]) -> str:
    for (key,) in paths:
        value = summary.get(key)
        if value:
            return str(value).strip()
    return ""


def _liability_row(summary: Mapping[str, Any]) -> LiabilityRow:
    return LiabilityRow(
        waiver_id=_summary_id(summary),
        template_id=str(summary.get("templateId") or ""),
        signed_on=normalize_timestamp(summary.get("createdOn") or summary.get("created")),
        email=str(summary.get("email") or ""),
        first_name=_summary_field(summary, FIRST_NAME_PATHS),
        last_name=_summary_field(summary, LAST_NAME_PATHS),
        external_tag=extract_external_tag(summary),
    )


async def open_liabilities(
    *,
    settings: Settings,
    client: WaiverClient,
    time_range: TimeRange,
) -> OpenLiabilitiesResponse:
    bounds = {"from_": format_upstream(time_range.start), "to": format_upstream(time_range.end)}

    if not settings.sw_api_key or not settings.liability_template_id:
        return OpenLiabilitiesResponse(
            error="Missing configuration (SW_API_KEY / LIABILITY_TEMPLATE_ID)", **bounds
        )

    try:
        summaries = await client.list_waivers(
            settings.liability_template_id,
            time_range.start,
            time_range.end,
            max_pages=settings.max_pages,
        )
    except WaiverClientError as e:
        logger.warning(f"Open liabilities: upstream listing failed: {e}")
        return OpenLiabilitiesResponse(error=str(e), **bounds)

    rows = [_liability_row(w) for w in summaries]
    return OpenLiabilitiesResponse(rows=rows, count=len(rows), **bounds)


async def intake_details(
    waiver_id: str,
    *,
    settings: Settings,
    client: WaiverClient,
) -> dict[str, Any]:
    if not settings.sw_api_key:
        return {"error": "Missing configuration (SW_API_KEY)", "participants": []}
    if not waiver_id:
        return {"error": "Missing waiverId", "participants": []}

    try:
        detail = await client.fetch_waiver(waiver_id)
    except WaiverClientError as e:
        logger.warning(f"Intake details: fetch failed for {waiver_id}: {e}")
        return {"error": str(e), "participants": []}

    event = _normalize(
        detail,
        EventKindV1.INTAKE,
        settings=settings,
        template_id=settings.intake_template_id,
    )
    if event is None:
        return {"error": "Waiver could not be normalized", "participants": []}
    return event.model_dump(mode="json")


def _emails(summary: Mapping[str, Any]) -> set[str]:
    found = {str(summary.get("email") or "").strip().lower()}
    participants = summary.get("participants")
    if isinstance(participants, list):
        found.update(
            str(p.get("email") or "").strip().lower()
            for p in participants
            if isinstance(p, Mapping)
        )
    found.discard("")
    return found


async def liability_latest(
    email: str,
    *,
    settings: Settings,
    client: WaiverClient,
    time_range: TimeRange,
) -> LiabilityLatestResponse:
    """The most recently signed liability waiver for an email address."""

    if not settings.sw_api_key or not settings.liability_template_id:
        return LiabilityLatestResponse(
            error="Missing configuration (SW_API_KEY / LIABILITY_TEMPLATE_ID)"
        )
    wanted = email.strip().lower()
    if not wanted:
        return LiabilityLatestResponse(error="Missing email")

    try:
        summaries = await client.list_waivers(
            settings.liability_template_id,
            time_range.start,
            time_range.end,
            max_pages=settings.max_pages,
        )
    except WaiverClientError as e:
        logger.warning(f"Latest liability: upstream listing failed: {e}")
        return LiabilityLatestResponse(error=str(e))

    rows = [_liability_row(w) for w in summaries if wanted in _emails(w)]
    if not rows:
        return LiabilityLatestResponse(error="No prior liability found")

    oldest = datetime.min.replace(tzinfo=timezone.utc)
    latest = max(rows, key=lambda r: parse_timestamp(r.signed_on) or oldest)
    return LiabilityLatestResponse(row=latest, rows=[latest], count=1)
