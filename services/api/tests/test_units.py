from datetime import date

import pytest
from services.api.app.waivers.units import (
    age_from_dob,
    coerce_age,
    height_from_feet_inches,
    normalize_skier_type,
    parse_dob,
    parse_height_in,
    parse_weight_lb,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("72 in", 72),
        ("6 ft", 72),
        ("5'11\"", 71),
        ("5 ft 11 in", 71),
        ("5’ 4”", 64),
        ("72''", 72),
        ("5' 11''", 71),
        ("182 cm", 72),
        ("70", 70),
        ("180", 71),
        (66, 66),
        ("tall", None),
        ("", None),
        ("300", None),
        (None, None),
    ],
)
def test_parse_height_in(raw: object, expected: int | None) -> None:
    assert parse_height_in(raw) == expected


def test_height_from_feet_and_inches_fields() -> None:
    assert height_from_feet_inches("5", "11") == 71
    assert height_from_feet_inches(6, None) == 72
    assert height_from_feet_inches(None, "11") is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("80 kg", 176),
        ("150 lb", 150),
        ("150", 150),
        ("150.5 lbs", 151),
        (72.5, 73),
        ("0", None),
        ("heavy", None),
        ("9" * 400, None),
        (10**400, None),
    ],
)
def test_parse_weight_lb(raw: object, expected: int | None) -> None:
    assert parse_weight_lb(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("II", "II"),
        ("Type III", "III"),
        ("type 1", "I"),
        ("Intermediate", "II"),
        ("Expert / aggressive", "III"),
        ("II - intermediate", "II"),
        ("I or II", ""),
        ("I ski fast", ""),
        ("I think intermediate", "II"),
        ("Level II", "II"),
        ("beginner, type III", ""),
        ("snowboarder", ""),
        (None, ""),
    ],
)
def test_normalize_skier_type_requires_agreement(raw: object, expected: str) -> None:
    assert normalize_skier_type(raw) == expected


def test_parse_dob_formats() -> None:
    assert parse_dob("2010-03-04") == date(2010, 3, 4)
    assert parse_dob("2010-03-04T00:00:00Z") == date(2010, 3, 4)
    assert parse_dob("03/04/2010") == date(2010, 3, 4)
    assert parse_dob("20100304") == date(2010, 3, 4)
    assert parse_dob("2010-02-30") is None
    assert parse_dob("yesterday") is None


def test_age_boundary_on_birthday() -> None:
    today = date(2024, 6, 15)
    assert age_from_dob("2014-06-15", today) == 10
    assert age_from_dob("2014-06-16", today) == 9
    assert age_from_dob("1880-01-01", today) is None


def test_coerce_age_rejects_out_of_range() -> None:
    assert coerce_age("42") == 42
    assert coerce_age(121) is None
    assert coerce_age("12.5") is None
    assert coerce_age(None) is None
    assert coerce_age("9" * 400) is None


def test_oversized_numbers_are_not_recognized() -> None:
    assert parse_height_in("9" * 400 + " in") is None
    assert parse_height_in(10**400) is None
    assert height_from_feet_inches("9" * 400, "2") is None
