from __future__ import annotations

import datetime as dt


def now_utc() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def now_utc_iso() -> str:
    return now_utc().isoformat()


def parse_iso8601(value: str | None) -> dt.datetime | None:
    if not value:
        return None
    try:
        parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.astimezone(dt.timezone.utc)


EARLIEST_UTC = dt.datetime.min.replace(tzinfo=dt.timezone.utc)


def timestamp_sort_key(value: str | None) -> dt.datetime:
    """Comparable instant for an ISO-8601 string; unparseable values sort oldest."""
    return parse_iso8601(value) or EARLIEST_UTC


def start_of_day_iso(day: dt.date | None = None) -> str:
    target = day or now_utc().date()
    return dt.datetime.combine(target, dt.time.min, tzinfo=dt.timezone.utc).isoformat()


def format_last_activation(timestamp: str | None, now: dt.datetime | None = None) -> str:
    then = parse_iso8601(timestamp)
    if then is None:
        return "Never"
    current = now or now_utc()
    minutes = int((current - then).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes} min ago"
    if minutes < 1440:
        return f"{minutes // 60} hours ago"
    return f"{minutes // 1440} days ago"
