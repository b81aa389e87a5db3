from __future__ import annotations

import datetime as dt

import pytest

from solaris.util.time import format_last_activation, parse_iso8601, start_of_day_iso, timestamp_sort_key

NOW = dt.datetime(2026, 3, 1, 12, 0, tzinfo=dt.timezone.utc)


@pytest.mark.parametrize(
    ("timestamp", "label"),
    [
        (None, "Never"),
        ("not a date", "Never"),
        ("2026-03-01T11:59:30Z", "Just now"),
        ("2026-03-01T11:15:00+00:00", "45 min ago"),
        ("2026-03-01T07:00:00+00:00", "5 hours ago"),
        ("2026-02-26T12:00:00+00:00", "3 days ago"),
    ],
)
def test_last_activation_labels(timestamp: str | None, label: str) -> None:
    assert format_last_activation(timestamp, NOW) == label


def test_parse_iso8601_accepts_zulu_suffix() -> None:
    assert parse_iso8601("2026-03-01T10:00:00Z") == dt.datetime(2026, 3, 1, 10, tzinfo=dt.timezone.utc)


def test_start_of_day_is_utc_midnight() -> None:
    assert start_of_day_iso(dt.date(2026, 3, 1)) == "2026-03-01T00:00:00+00:00"


def test_timestamp_sort_key_compares_instants_not_text() -> None:
    later = timestamp_sort_key("2026-03-01T10:45:00Z")
    earlier = timestamp_sort_key("2026-03-01T12:00:00.250000+02:00")
    assert later > earlier
    assert timestamp_sort_key("garbage") < earlier
