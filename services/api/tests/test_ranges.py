from datetime import datetime, timezone

from services.api.app.waivers.ranges import format_upstream, parse_range

NOW = datetime(2025, 1, 10, 15, 30, tzinfo=timezone.utc)


def test_date_only_range_covers_whole_days() -> None:
    r = parse_range("2025-01-08", "2025-01-09", now=NOW)

    assert r is not None
    assert r.start == datetime(2025, 1, 8, tzinfo=timezone.utc)
    assert r.end == datetime(2025, 1, 10, tzinfo=timezone.utc)
    assert r.contains(datetime(2025, 1, 9, 23, 59, tzinfo=timezone.utc))
    assert not r.contains(datetime(2025, 1, 10, tzinfo=timezone.utc))


def test_iso_bounds_are_kept() -> None:
    r = parse_range("2025-01-10T08:00:00Z", "2025-01-10T12:00:00+00:00", now=NOW)

    assert r is not None
    assert r.start == datetime(2025, 1, 10, 8, tzinfo=timezone.utc)
    assert r.end == datetime(2025, 1, 10, 12, tzinfo=timezone.utc)


def test_no_bounds_uses_default_days_or_none() -> None:
    assert parse_range(None, None, now=NOW) is None

    r = parse_range("", None, default_days=2, now=NOW)
    assert r is not None
    assert r.start == datetime(2025, 1, 9, tzinfo=timezone.utc)
    assert r.end == datetime(2025, 1, 11, tzinfo=timezone.utc)


def test_open_ended_bounds() -> None:
    r = parse_range("2025-01-09", None, now=NOW)

    assert r is not None
    assert r.start == datetime(2025, 1, 9, tzinfo=timezone.utc)
    assert r.end > NOW


def test_format_upstream() -> None:
    assert format_upstream(datetime(2025, 1, 9, 7, 5, 3, tzinfo=timezone.utc)) == "2025-01-09 07:05:03"
