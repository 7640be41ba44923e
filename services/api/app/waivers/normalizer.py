"""Turn raw waiver payloads into WaiverEventV1.

Upstream shapes drift between templates and API versions, so every field is read through
an ordered chain of extractors. Each extractor returns a value or None and the first
usable value wins. Metrics (weight, height, skier type, age) use three layers:

1. a structured field on the participant,
2. the participant's custom fields (configured field ids, then displayText keywords),
3. a recursive scan for label/value nodes (participant first, then the whole waiver when
   it has a single participant).
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

from packages.shared.schemas.events import EventKindV1, ParticipantV1, WaiverEventV1
from services.api.app.waivers.units import (
    age_from_dob,
    coerce_age,
    height_from_feet_inches,
    normalize_skier_type,
    parse_height_in,
    parse_weight_lb,
    positive_int,
    to_number,
)

_MAX_SCAN_DEPTH = 8

_LABEL_KEYS = ("label", "question", "name", "title", "text", "displayText")
_VALUE_KEYS = ("value", "answer", "response")

_WEIGHT_RE = re.compile(r"weight|\blbs?\b|pounds", re.I)
_HEIGHT_FEET_RE = re.compile(r"height.*(feet|\bft\b)", re.I)
_HEIGHT_INCH_RE = re.compile(r"height.*inch", re.I)
_HEIGHT_RE = re.compile(r"height", re.I)
_SKIER_RE = re.compile(r"skier\s*(type|ability)|ability\s*level|\btype\s*(i{1,3}|[123])\b", re.I)
_DOB_RE = re.compile(r"birth|\bdob\b", re.I)
_AGE_RE = re.compile(r"^\s*age\b", re.I)
_FIRST_RE = re.compile(r"first\s*name", re.I)
_LAST_RE = re.compile(r"last\s*name", re.I)

Pairs = list[tuple[str, Any]]


@dataclass(frozen=True, slots=True)
class _Source:
    participant: Mapping[str, Any]
    waiver: Mapping[str, Any]
    scan_waiver: bool
    today: date
    field_ids: Mapping[str, Sequence[str]]

    def custom_fields(self) -> Mapping[str, Any]:
        cpf = self.participant.get("customParticipantFields")
        return cpf if isinstance(cpf, Mapping) else {}

    def custom_pairs(self) -> Pairs:
        out: Pairs = []
        for entry in self.custom_fields().values():
            if isinstance(entry, Mapping):
                out.append((str(entry.get("displayText") or ""), entry.get("value")))
        return out

    def scanned_pairs(self) -> Pairs:
        pairs = collect_label_values(self.participant)
        if self.scan_waiver:
            pairs.extend(collect_label_values(self.waiver))
        return pairs


Extractor = Callable[[_Source], Any]


# -- generic helpers ---------------------------------------------------------


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _dig(node: Any, path: Sequence[str]) -> Any:
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def _first_of(node: Mapping[str, Any], paths: Sequence[Sequence[str]]) -> Any:
    for path in paths:
        value = _dig(node, path)
        if _present(value):
            return value
    return None


def _run_chain(source: _Source, chain: Sequence[Extractor]) -> Any:
    for extractor in chain:
        value = extractor(source)
        if _present(value):
            return value
    return None


def collect_label_values(node: Any, depth: int = 0) -> Pairs:
    """Walk a JSON tree and collect (label, value) pairs from question-like nodes."""

    out: Pairs = []
    if depth > _MAX_SCAN_DEPTH:
        return out

    if isinstance(node, Mapping):
        label = next((node[k] for k in _LABEL_KEYS if isinstance(node.get(k), str)), None)
        value = next((node[k] for k in _VALUE_KEYS if _present(node.get(k))), None)
        if label is not None and value is not None and not isinstance(value, (Mapping, list)):
            out.append((label.strip(), value))
        for child in node.values():
            if isinstance(child, (Mapping, list)):
                out.extend(collect_label_values(child, depth + 1))
    elif isinstance(node, list):
        for child in node:
            out.extend(collect_label_values(child, depth + 1))

    return out


def _lookup(pairs: Pairs, pattern: re.Pattern[str]) -> Any:
    for label, value in pairs:
        if pattern.search(label) and _present(value):
            return value
    return None


def _custom_by_id(source: _Source, metric: str) -> Any:
    fields = source.custom_fields()
    for field_id in source.field_ids.get(metric, ()):
        entry = fields.get(field_id)
        if isinstance(entry, Mapping) and _present(entry.get("value")):
            return entry.get("value")
    return None


# -- per-metric parsing over label/value pairs -------------------------------


def _height_from_pairs(pairs: Pairs) -> int | None:
    feet = _lookup(pairs, _HEIGHT_FEET_RE)
    inches = _lookup(pairs, _HEIGHT_INCH_RE)
    if feet is not None:
        return height_from_feet_inches(feet, inches)
    if inches is not None:
        return parse_height_in(inches)
    return parse_height_in(_lookup(pairs, _HEIGHT_RE))


def _age_from_pairs(pairs: Pairs, today: date) -> int | None:
    dob = _lookup(pairs, _DOB_RE)
    if dob is not None:
        age = age_from_dob(dob, today)
        if age is not None:
            return age
    return coerce_age(_lookup(pairs, _AGE_RE))


# -- extractor chains ----------------------------------------------------------


def _direct(keys: Sequence[str], parse: Callable[[Any], Any]) -> Extractor:
    def extract(source: _Source) -> Any:
        for key in keys:
            value = parse(source.participant.get(key))
            if _present(value):
                return value
        return None

    return extract


def _direct_height(source: _Source) -> int | None:
    p = source.participant
    total = p.get("height_in") if p.get("height_in") is not None else p.get("heightIn")
    if isinstance(total, (int, float)) and not isinstance(total, bool):
        direct = positive_int(to_number(total))
        if direct is not None:
            return direct
    if total is not None:
        parsed = parse_height_in(total)
        if parsed is not None:
            return parsed
    return parse_height_in(p.get("height"))


def _direct_age(source: _Source) -> int | None:
    age = coerce_age(source.participant.get("age"))
    if age is not None:
        return age
    for key in ("dob", "dateOfBirth", "date_of_birth", "birthDate"):
        age = age_from_dob(source.participant.get(key), source.today)
        if age is not None:
            return age
    return None


def _custom_height_by_id(source: _Source) -> int | None:
    feet = _custom_by_id(source, "height_feet")
    inches = _custom_by_id(source, "height_inches")
    if feet is not None:
        return height_from_feet_inches(feet, inches)
    if inches is not None:
        return parse_height_in(inches)
    return parse_height_in(_custom_by_id(source, "height"))


WEIGHT_CHAIN: tuple[Extractor, ...] = (
    _direct(("weight_lb", "weightLb", "weight"), parse_weight_lb),
    lambda s: parse_weight_lb(_custom_by_id(s, "weight")),
    lambda s: parse_weight_lb(_lookup(s.custom_pairs(), _WEIGHT_RE)),
    lambda s: parse_weight_lb(_lookup(s.scanned_pairs(), _WEIGHT_RE)),
)

HEIGHT_CHAIN: tuple[Extractor, ...] = (
    _direct_height,
    _custom_height_by_id,
    lambda s: _height_from_pairs(s.custom_pairs()),
    lambda s: _height_from_pairs(s.scanned_pairs()),
)

SKIER_TYPE_CHAIN: tuple[Extractor, ...] = (
    _direct(("skier_type", "skierType"), normalize_skier_type),
    lambda s: normalize_skier_type(_custom_by_id(s, "skier_type")),
    lambda s: normalize_skier_type(_lookup(s.custom_pairs(), _SKIER_RE)),
    lambda s: normalize_skier_type(_lookup(s.scanned_pairs(), _SKIER_RE)),
)

AGE_CHAIN: tuple[Extractor, ...] = (
    _direct_age,
    lambda s: _age_from_pairs(s.custom_pairs(), s.today),
    lambda s: _age_from_pairs(s.scanned_pairs(), s.today),
)

FIRST_NAME_CHAIN: tuple[Extractor, ...] = (
    _direct(("firstName", "first_name"), lambda v: str(v).strip() if _present(v) else None),
    lambda s: _lookup(s.custom_pairs(), _FIRST_RE),
)

LAST_NAME_CHAIN: tuple[Extractor, ...] = (
    _direct(("lastName", "last_name"), lambda v: str(v).strip() if _present(v) else None),
    lambda s: _lookup(s.custom_pairs(), _LAST_RE),
)


# -- waiver-level fields ---------------------------------------------------------

WAIVER_ID_PATHS = (("waiverId",), ("waiver_id",), ("id",), ("uniqueId",), ("unique_id",))
TEMPLATE_ID_PATHS = (("templateId",), ("template_id",))
SIGNED_ON_PATHS = (
    ("createdOn",),
    ("created_on",),
    ("signedOn",),
    ("signed_on",),
    ("verifiedOn",),
    ("date",),
)
EMAIL_PATHS = (("email",), ("contactEmail",), ("contact_email",))
FIRST_NAME_PATHS = (("firstName",), ("first_name",))
LAST_NAME_PATHS = (("lastName",), ("last_name",))
PDF_PATHS = (("pdf_url",), ("pdfUrl",), ("waiverPDF", "url"), ("pdf",))


def _str(value: Any) -> str:
    return str(value).strip() if _present(value) else ""


def normalize_timestamp(value: Any) -> str:
    """Smartwaiver returns "YYYY-MM-DD HH:MM:SS" in UTC; rewrite those as ISO-8601."""

    s = _str(value)
    if re.match(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$", s):
        return s.replace(" ", "T") + "Z"
    return s


def extract_external_tag(waiver: Mapping[str, Any]) -> str:
    tags = waiver.get("tags")
    candidates: list[Any] = [waiver.get("external_tag")]
    if isinstance(tags, list):
        candidates.extend(tags)
    if _present(waiver.get("autoTag")):
        candidates.append(waiver.get("autoTag"))
    for tag in candidates:
        text = _str(tag)
        if text.lower().startswith("ls_") and len(text) > 3:
            return text
    return ""


def _pdf_url(waiver: Mapping[str, Any]) -> str:
    value = _first_of(waiver, PDF_PATHS)
    text = _str(value) if isinstance(value, str) else ""
    return text if text.lower().startswith(("http://", "https://")) else ""


def unwrap_waiver(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    inner = raw.get("waiver")
    return inner if isinstance(inner, Mapping) else raw


# -- entry points ------------------------------------------------------------------


def normalize(
    raw: Mapping[str, Any],
    template_kind: EventKindV1 | str,
    *,
    template_id: str = "",
    today: date | None = None,
    field_ids: Mapping[str, Sequence[str]] | None = None,
) -> WaiverEventV1:
    """Build a WaiverEventV1 from a waiver detail payload.

    Pure: the same payload (and `today`) always yields the same event. Missing or odd
    fields degrade to empty values; only a non-mapping payload raises TypeError.
    """

    if not isinstance(raw, Mapping):
        raise TypeError(f"waiver payload must be a mapping, got {type(raw).__name__}")

    kind = EventKindV1(template_kind)
    today = today or date.today()
    field_ids = field_ids or {}
    waiver = unwrap_waiver(raw)

    waiver_id = _str(_first_of(waiver, WAIVER_ID_PATHS))
    waiver_email = _str(_first_of(waiver, EMAIL_PATHS))

    raw_participants = waiver.get("participants")
    entries: list[Mapping[str, Any]]
    if isinstance(raw_participants, list) and raw_participants:
        entries = [p if isinstance(p, Mapping) else {} for p in raw_participants]
    else:
        # No participant list: the signer is the only participant.
        entries = [_synthesized_participant(waiver)]

    scan_waiver = len(entries) <= 1
    participants = [
        _participant(
            index,
            _Source(
                participant=entry,
                waiver=waiver,
                scan_waiver=scan_waiver,
                today=today,
                field_ids=field_ids,
            ),
            waiver_email,
        )
        for index, entry in enumerate(entries)
    ]

    event = WaiverEventV1(
        type=kind,
        waiver_id=waiver_id,
        template_id=template_id or _str(_first_of(waiver, TEMPLATE_ID_PATHS)),
        signed_on=normalize_timestamp(_first_of(waiver, SIGNED_ON_PATHS)),
        external_tag=extract_external_tag(waiver),
        email=waiver_email,
        participants=participants,
        pdf_url=_pdf_url(waiver),
    )

    if kind == EventKindV1.LIABILITY:
        return reduce_for_matching(event)
    return event


def reduce_for_matching(event: WaiverEventV1) -> WaiverEventV1:
    return event.reduced()


def _synthesized_participant(waiver: Mapping[str, Any]) -> Mapping[str, Any]:
    fields = dict(waiver)
    fields.pop("participants", None)
    return fields


def _participant(index: int, source: _Source, waiver_email: str) -> ParticipantV1:
    return ParticipantV1(
        participant_index=index,
        first_name=_str(_run_chain(source, FIRST_NAME_CHAIN)),
        last_name=_str(_run_chain(source, LAST_NAME_CHAIN)),
        email=_str(source.participant.get("email")) or waiver_email,
        age=_run_chain(source, AGE_CHAIN),
        weight_lb=_run_chain(source, WEIGHT_CHAIN),
        height_in=_run_chain(source, HEIGHT_CHAIN),
        skier_type=_run_chain(source, SKIER_TYPE_CHAIN) or "",
    )
