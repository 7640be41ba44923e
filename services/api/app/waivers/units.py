"""Unit parsing for the body metrics people type into waiver forms.

Every parser returns None (or "" for skier type) when the input is not recognized. They
never raise on bad input.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any

KG_TO_LB = 2.20462
CM_PER_INCH = 2.54

_NUM = r"(\d+(?:\.\d+)?)"

_CM_RE = re.compile(rf"{_NUM}\s*(?:cm|centimet(?:er|re)s?)\b")
_FEET_RE = re.compile(
    rf"{_NUM}\s*(?:'(?!')|’|ft\b|feet\b|foot\b)\s*(?:{_NUM}\s*(?:\"|”|''|in\b|inch(?:es)?\b)?)?"
)
_INCHES_RE = re.compile(rf"{_NUM}\s*(?:\"|”|''|in\b|inch(?:es)?\b)")
_BARE_RE = re.compile(rf"^{_NUM}$")
_KG_RE = re.compile(r"\bkgs?\b|kilo|\d\s*kg")

_SKIER_WORDS = {
    "BEGINNER": "I",
    "CAUTIOUS": "I",
    "INTERMEDIATE": "II",
    "MODERATE": "II",
    "ADVANCED": "III",
    "EXPERT": "III",
    "AGGRESSIVE": "III",
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _finite(value: Any) -> float | None:
    try:
        n = float(value)
    except (OverflowError, ValueError):
        return None
    return n if math.isfinite(n) else None


def to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _finite(value)
    m = re.search(r"-?\d+(?:\.\d+)?", str(value))
    return _finite(m.group(0)) if m else None


def positive_int(value: float | None) -> int | None:
    """Round half up, keeping only finite results above zero."""

    if value is None or not math.isfinite(value):
        return None
    n = round_half_up(value)
    return n if n > 0 else None


def height_from_feet_inches(feet: Any, inches: Any) -> int | None:
    f = to_number(feet)
    i = to_number(inches)
    if f is None:
        return None
    return positive_int(f * 12 + (i or 0.0))


def _bare_height(n: float) -> int | None:
    if 45 <= n <= 96:
        return positive_int(n)
    if 96 < n <= 230:
        return positive_int(n / CM_PER_INCH)
    return None


def parse_height_in(value: Any) -> int | None:
    """Height in whole inches.

    Accepts 5'11", "5 ft 11 in", "6 ft", "71 in", "180 cm", or a bare number: 45-96 is
    inches, above 96 up to 230 is centimeters.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        n = _finite(value)
        return _bare_height(n) if n is not None else None

    s = str(value).strip().lower()
    if not s:
        return None

    m = _CM_RE.search(s)
    if m:
        return positive_int(float(m.group(1)) / CM_PER_INCH)

    m = _FEET_RE.search(s)
    if m:
        feet = float(m.group(1))
        inches = float(m.group(2)) if m.group(2) else 0.0
        return positive_int(feet * 12 + inches)

    m = _INCHES_RE.search(s)
    if m:
        return positive_int(float(m.group(1)))

    m = _BARE_RE.match(s)
    if m:
        return _bare_height(float(m.group(1)))

    return None


def parse_weight_lb(value: Any) -> int | None:
    """Weight in whole pounds. Kilograms convert; anything without a kg marker is pounds."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return positive_int(_finite(value))

    s = str(value).strip().lower()
    m = re.search(_NUM, s)
    if not m:
        return None

    n = float(m.group(1))
    if _KG_RE.search(s):
        n *= KG_TO_LB
    return positive_int(n)


def normalize_skier_type(value: Any) -> str:
    """Map free text to "I", "II" or "III".

    Roman numerals (alone or after "type", "level" or "skier"), the digits 1-3 and the
    usual ability words all count as signals.
    When the signals disagree, or there are none, the answer is "".
    """

    if value is None or isinstance(value, bool):
        return ""
    s = str(value).strip().upper()
    if not s:
        return ""

    found: set[str] = set()
    whole = re.fullmatch(r"I{1,3}", s)
    if whole:
        found.add(whole.group(0))
    # a lone "I" in free text is usually the pronoun
    found.update(re.findall(r"\b(?:TYPE|LEVEL|SKIER)\s*[:#-]?\s*(I{1,3})\b", s))
    found.update("I" * int(d) for d in re.findall(r"\b([123])\b", s))
    for word, skier_type in _SKIER_WORDS.items():
        if re.search(rf"\b{word}\b", s):
            found.add(skier_type)

    if len(found) == 1:
        return found.pop()
    return ""


def parse_dob(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None:
        return None

    s = str(value).strip()
    patterns = (
        (r"^(\d{4})-(\d{1,2})-(\d{1,2})", (0, 1, 2)),
        (r"^(\d{1,2})/(\d{1,2})/(\d{4})$", (2, 0, 1)),
        (r"^(\d{4})(\d{2})(\d{2})$", (0, 1, 2)),
    )
    for pattern, (yi, mi, di) in patterns:
        m = re.match(pattern, s)
        if not m:
            continue
        parts = m.groups()
        try:
            return date(int(parts[yi]), int(parts[mi]), int(parts[di]))
        except ValueError:
            return None
    return None


def _valid_age(age: int) -> int | None:
    return age if 0 <= age <= 120 else None


def age_from_dob(value: Any, today: date) -> int | None:
    born = parse_dob(value)
    if born is None:
        return None
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return _valid_age(age)


def coerce_age(value: Any) -> int | None:
    n = to_number(value)
    if n is None or n != int(n):
        return None
    return _valid_age(int(n))
