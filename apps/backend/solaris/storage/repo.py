from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from uuid import uuid4

from solaris.errors import RemoteStoreError
from solaris.util.logging import get_logger
from solaris.util.time import now_utc_iso

from .base import EventStore
from .db import Database
from .models import BatteryLog, CaptureEvent, DeviceRecord, LuxLog, TriggerEvent

logger = get_logger(__name__)


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        logger.warning("local event store %s failed: %s", operation, exc)
        raise RemoteStoreError(f"{operation} failed: {exc}") from exc


class SqliteEventStore(EventStore):
    def __init__(self, db: Database, clock: Callable[[], str] = now_utc_iso) -> None:
        self.db = db
        self._clock = clock
        self._capture_insert_sql = """
            INSERT INTO motion_events (
                id, device_id, file_name, file_path, file_size, duration,
                detected_at, location, thumbnail_data, viewed, starred
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """

    def recent_captures(self, device_id: str, limit: int) -> list[CaptureEvent]:
        with _store_errors("recent_captures"):
            rows = self.db.query(
                """
                SELECT * FROM motion_events
                WHERE device_id = ?
                ORDER BY detected_at DESC
                LIMIT ?
                """,
                (device_id, max(1, limit)),
            )
        return [CaptureEvent.from_row(dict(row)) for row in rows]

    def delete_capture(self, event_id: str) -> None:
        with _store_errors("delete_capture"):
            self.db.execute("DELETE FROM motion_events WHERE id = ?", (event_id,))

    def insert_capture(self, event: CaptureEvent) -> None:
        with _store_errors("insert_capture"):
            self.db.execute(self._capture_insert_sql, self._capture_params(event))

    def insert_captures(self, events: list[CaptureEvent]) -> None:
        if not events:
            return
        with _store_errors("insert_captures"):
            self.db.executemany(self._capture_insert_sql, [self._capture_params(e) for e in events])

    @staticmethod
    def _capture_params(event: CaptureEvent) -> tuple[object, ...]:
        return (
            event.id,
            event.device_id,
            event.file_name,
            event.file_path,
            int(event.file_size_bytes),
            float(event.duration_seconds),
            event.detected_at,
            event.location,
            event.thumbnail,
            int(event.viewed),
            int(event.starred),
        )

    def device_for_owner(self, owner_id: str) -> DeviceRecord | None:
        with _store_errors("device_for_owner"):
            row = self.db.query_one(
                "SELECT * FROM devices WHERE user_id = ? ORDER BY updated_at DESC LIMIT 1",
                (owner_id,),
            )
        if not row:
            return None
        return DeviceRecord.from_row(dict(row))

    def register_device(self, device: DeviceRecord) -> DeviceRecord:
        now_iso = self._clock()
        row = device.to_row()
        with _store_errors("register_device"):
            self.db.execute(
                """
                INSERT INTO devices (id, user_id, name, pi_url, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  user_id=excluded.user_id,
                  name=excluded.name,
                  pi_url=excluded.pi_url,
                  updated_at=excluded.updated_at
                """,
                (row["id"], row["user_id"], row["name"], row["pi_url"], now_iso, now_iso),
            )
        return device

    def rename_device(self, device_id: str, display_name: str) -> DeviceRecord:
        with _store_errors("rename_device"):
            self.db.execute(
                "UPDATE devices SET name = ?, updated_at = ? WHERE id = ?",
                (display_name, self._clock(), device_id),
            )
            row = self.db.query_one("SELECT * FROM devices WHERE id = ?", (device_id,))
        if not row:
            raise RemoteStoreError(f"device not found: {device_id}")
        return DeviceRecord.from_row(dict(row))

    def trigger_events_since(self, since_iso: str) -> list[TriggerEvent]:
        with _store_errors("trigger_events_since"):
            rows = self.db.query(
                "SELECT id, type, created_at FROM trigger_events WHERE created_at >= ? ORDER BY created_at ASC",
                (since_iso,),
            )
        return [TriggerEvent(id=str(r["id"]), type=str(r["type"]), created_at=str(r["created_at"])) for r in rows]

    def battery_logs_since(self, since_iso: str) -> list[BatteryLog]:
        with _store_errors("battery_logs_since"):
            rows = self.db.query(
                "SELECT time, percentage FROM battery_logs WHERE created_at >= ? ORDER BY time ASC",
                (since_iso,),
            )
        return [BatteryLog(time=str(r["time"]), percentage=float(r["percentage"])) for r in rows]

    def lux_logs_since(self, since_iso: str) -> list[LuxLog]:
        with _store_errors("lux_logs_since"):
            rows = self.db.query(
                "SELECT time, value FROM lux_logs WHERE created_at >= ? ORDER BY time ASC",
                (since_iso,),
            )
        return [LuxLog(time=str(r["time"]), value=float(r["value"])) for r in rows]

    def record_trigger(self, trigger_type: str, created_at: str | None = None) -> str:
        event_id = f"trg-{uuid4().hex}"
        with _store_errors("record_trigger"):
            self.db.execute(
                "INSERT INTO trigger_events (id, type, created_at) VALUES (?, ?, ?)",
                (event_id, trigger_type, created_at or self._clock()),
            )
        return event_id

    def record_battery(self, percentage: float, at: str | None = None) -> None:
        stamp = at or self._clock()
        with _store_errors("record_battery"):
            self.db.execute(
                "INSERT INTO battery_logs (time, percentage, created_at) VALUES (?, ?, ?)",
                (stamp, float(percentage), stamp),
            )

    def record_lux(self, value: float, at: str | None = None) -> None:
        stamp = at or self._clock()
        with _store_errors("record_lux"):
            self.db.execute(
                "INSERT INTO lux_logs (time, value, created_at) VALUES (?, ?, ?)",
                (stamp, float(value), stamp),
            )

    def close(self) -> None:
        self.db.close()
