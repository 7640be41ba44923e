"""Reconcile intake participants against liability waivers.

A participant is closed when a liability event shares its CRM tag, its email, or its
first/last name pair, checked in that order (tag and email are less ambiguous than
names). Closing is computed here on every call; nothing is ever written back.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from packages.shared.schemas.events import EventKindV1, OpenRowV1, ParticipantV1, WaiverEventV1


@dataclass(slots=True)
class LiabilityIndex:
    tags: set[str] = field(default_factory=set)
    emails: set[str] = field(default_factory=set)
    names: set[str] = field(default_factory=set)

    def add(self, event: WaiverEventV1) -> None:
        _add(self.tags, tag_key(event.external_tag))
        _add(self.emails, email_key(event.email))
        for p in event.participants:
            _add(self.emails, email_key(p.email))
            _add(self.names, name_key(p.first_name, p.last_name))

    def closes(self, event: WaiverEventV1, participant: ParticipantV1) -> bool:
        candidates = (
            (self.tags, tag_key(event.external_tag)),
            (self.emails, email_key(participant.email or event.email)),
            (self.names, name_key(participant.first_name, participant.last_name)),
        )
        return any(key and key in keys for keys, key in candidates)


def _add(keys: set[str], key: str) -> None:
    if key:
        keys.add(key)


def tag_key(tag: str) -> str:
    return (tag or "").strip().lower()


def email_key(email: str) -> str:
    return (email or "").strip().lower()


def name_key(first_name: str, last_name: str) -> str:
    first = (first_name or "").strip().lower()
    last = (last_name or "").strip().lower()
    if not first or not last:
        return ""
    return f"{first}_{last}"


def row_key(waiver_id: str, participant_index: int) -> str:
    return f"{waiver_id}:{participant_index}"


def dedupe(events: Iterable[WaiverEventV1]) -> list[WaiverEventV1]:
    """Keep the latest copy of each (type, waiver_id); retries deliver duplicates."""

    latest: dict[tuple[EventKindV1, str], WaiverEventV1] = {}
    for event in events:
        key = (event.type, event.waiver_id)
        latest.pop(key, None)
        latest[key] = event
    return list(latest.values())


def compute_open_participants(events: Iterable[WaiverEventV1]) -> list[OpenRowV1]:
    unique = dedupe(events)

    index = LiabilityIndex()
    for event in unique:
        if event.type == EventKindV1.LIABILITY:
            index.add(event)

    rows: list[OpenRowV1] = []
    for event in unique:
        if event.type != EventKindV1.INTAKE:
            continue
        for p in event.participants:
            if index.closes(event, p):
                continue
            rows.append(_open_row(event, p))

    rows.sort(key=lambda r: (r.waiver_id, r.participant_index))
    rows.sort(key=lambda r: _signed_on_sort_key(r.signed_on), reverse=True)
    return rows


def summarize(events: Iterable[WaiverEventV1], rows: list[OpenRowV1]) -> dict[str, int]:
    # "Never signed" and "signed but unmatched" look the same from here; report totals only.
    total = sum(
        len(e.participants) for e in dedupe(events) if e.type == EventKindV1.INTAKE
    )
    return {"intake_participants": total, "open": len(rows), "matched": total - len(rows)}


def _open_row(event: WaiverEventV1, p: ParticipantV1) -> OpenRowV1:
    return OpenRowV1(
        row_key=row_key(event.waiver_id, p.participant_index),
        waiver_id=event.waiver_id,
        signed_on=event.signed_on,
        pdf_url=event.pdf_url,
        external_tag=event.external_tag,
        lightspeed_id=event.lightspeed_id,
        participant_index=p.participant_index,
        first_name=p.first_name,
        last_name=p.last_name,
        email=p.email or event.email,
        age=p.age,
        weight_lb=p.weight_lb,
        height_in=p.height_in,
        skier_type=p.skier_type,
    )


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(value: str) -> datetime | None:
    text = (value or "").strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _signed_on_sort_key(value: str) -> datetime:
    # Rows without a usable timestamp sink to the bottom.
    return parse_timestamp(value) or _EPOCH
