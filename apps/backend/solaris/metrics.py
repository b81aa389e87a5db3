from __future__ import annotations

import datetime as dt
from dataclasses import asdict, dataclass, field

from solaris.storage.base import EventStore
from solaris.util.time import start_of_day_iso

TRIGGER_TYPES = ("camera", "indoor_pir", "outdoor_pir")


@dataclass
class DailyMetrics:
    since: str
    counts: dict[str, int] = field(default_factory=dict)
    total: int = 0
    battery: list[dict[str, object]] = field(default_factory=list)
    lux: list[dict[str, object]] = field(default_factory=list)
    latest_battery: float | None = None

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


def collect_daily_metrics(store: EventStore, day: dt.date | None = None) -> DailyMetrics:
    since = start_of_day_iso(day)
    counts = {name: 0 for name in TRIGGER_TYPES}
    for event in store.trigger_events_since(since):
        if event.type in counts:
            counts[event.type] += 1

    battery = store.battery_logs_since(since)
    lux = store.lux_logs_since(since)
    return DailyMetrics(
        since=since,
        counts=counts,
        total=sum(counts.values()),
        battery=[{"time": b.time, "percentage": b.percentage} for b in battery],
        lux=[{"time": item.time, "value": item.value} for item in lux],
        latest_battery=battery[-1].percentage if battery else None,
    )
