"""Webhook ingestion: parse, classify, enrich, persist, publish."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl

from packages.shared.schemas.events import EventKindV1
from services.api.app.models.waivers import WebhookAck
from services.api.app.services.bus_base import EventBus
from services.api.app.services.store import RecordStore
from services.api.app.services.waiver_base import WaiverClient, WaiverClientError
from services.api.app.settings import Settings
from services.api.app.waivers.normalizer import normalize

logger = logging.getLogger(__name__)

_WAIVER_ID_KEYS = ("waiverId", "waiver_id", "unique_id", "uniqueId")
_TEMPLATE_ID_KEYS = ("templateId", "template_id")


@dataclass(frozen=True, slots=True)
class IncomingWebhook:
    waiver_id: str
    template_id: str
    body: Mapping[str, Any]


def decode_body(raw: bytes) -> dict[str, Any]:
    """Decode a webhook body: JSON, JSON with a `payload` string, or form-encoded."""

    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        return {}

    try:
        data = json.loads(text)
    except ValueError:
        data = dict(parse_qsl(text, keep_blank_values=True))

    if not isinstance(data, dict):
        return {}

    payload = data.get("payload")
    if isinstance(payload, str):
        try:
            inner = json.loads(payload)
        except ValueError:
            inner = None
        if isinstance(inner, dict):
            return inner
    elif isinstance(payload, dict):
        return payload
    return data


def _pick(body: Mapping[str, Any], keys: tuple[str, ...]) -> str:
    scopes = [body]
    for nested in ("waiver", "data"):
        if isinstance(body.get(nested), Mapping):
            scopes.append(body[nested])
    for scope in scopes:
        for key in keys:
            value = scope.get(key)
            if value is not None and str(value).strip():
                return str(value).strip()
    return ""


def parse_incoming(body: Mapping[str, Any]) -> IncomingWebhook:
    return IncomingWebhook(
        waiver_id=_pick(body, _WAIVER_ID_KEYS),
        template_id=_pick(body, _TEMPLATE_ID_KEYS),
        body=body,
    )


def classify(template_id: str, settings: Settings) -> EventKindV1 | None:
    if template_id == settings.intake_template_id:
        return EventKindV1.INTAKE
    if template_id == settings.liability_template_id:
        return EventKindV1.LIABILITY
    return None


async def ingest_webhook(
    body: Mapping[str, Any],
    *,
    settings: Settings,
    client: WaiverClient,
    store: RecordStore,
    bus: EventBus,
) -> WebhookAck:
    incoming = parse_incoming(body)
    if not incoming.waiver_id or not incoming.template_id:
        logger.info("Webhook: ignored, missing ids")
        return WebhookAck(ok=True, ignored=True, reason="missing ids")

    missing = settings.missing_waiver_config()
    if missing:
        logger.error(f"Webhook: cannot process, missing config {', '.join(missing)}")
        return WebhookAck(ok=False, error=f"Missing configuration ({' / '.join(missing)})")

    kind = classify(incoming.template_id, settings)
    if kind is None:
        logger.info(
            f"Webhook: ignored waiver {incoming.waiver_id} with unknown template "
            f"{incoming.template_id}"
        )
        return WebhookAck(ok=True, ignored=True, reason="unknown template")

    try:
        detail = await client.fetch_waiver(incoming.waiver_id)
    except WaiverClientError as e:
        logger.warning(f"Webhook: enrichment failed for {incoming.waiver_id}: {e}")
        return WebhookAck(ok=False, waiver_id=incoming.waiver_id, error=str(e))

    try:
        event = normalize(
            detail,
            kind,
            template_id=incoming.template_id,
            field_ids=settings.field_ids,
        )
    except Exception:
        logger.exception(f"Webhook: could not normalize waiver {incoming.waiver_id}")
        return WebhookAck(
            ok=False, waiver_id=incoming.waiver_id, error="Waiver could not be normalized"
        )
    if not event.waiver_id:
        event = event.model_copy(update={"waiver_id": incoming.waiver_id})

    seq = await store.append(event)
    try:
        await bus.publish(event, seq=seq)
    except Exception:
        logger.exception(f"Webhook: publish failed for {event.waiver_id}")

    return WebhookAck(
        ok=True,
        type=kind.value,
        waiver_id=event.waiver_id,
        participants=len(event.participants),
        seq=seq,
    )
