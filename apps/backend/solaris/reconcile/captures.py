from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any

from solaris.config.defaults import DEFAULT_CAPTURE_LIMIT, DEFAULT_CAPTURE_POLL_SECONDS
from solaris.errors import NoDeviceBoundError, RemoteStoreError
from solaris.storage.base import EventStore
from solaris.storage.models import CaptureEvent
from solaris.util.logging import get_logger
from solaris.util.time import now_utc_iso, timestamp_sort_key

from .poller import PeriodicTask

logger = get_logger(__name__)


class CaptureHistorySync:
    """Bounded newest-first mirror of the remote motion event history for one device."""

    def __init__(
        self,
        store: EventStore,
        limit: int = DEFAULT_CAPTURE_LIMIT,
        poll_interval_s: float = DEFAULT_CAPTURE_POLL_SECONDS,
    ) -> None:
        self._store = store
        self.limit = max(1, int(limit))
        self._lock = threading.RLock()
        self._device_id: str | None = None
        self._epoch = 0
        self._captures: list[CaptureEvent] = []
        self._local_flags: dict[str, dict[str, bool]] = {}
        self._last_sync_at: str | None = None
        self._last_error: str | None = None
        self._poller = PeriodicTask("capture-sync", self.sync, poll_interval_s)

    @property
    def poller(self) -> PeriodicTask:
        return self._poller

    @property
    def device_id(self) -> str | None:
        with self._lock:
            return self._device_id

    def bind_device(self, device_id: str | None) -> None:
        with self._lock:
            self._epoch += 1
            self._device_id = device_id
            self._captures = []
            self._local_flags = {}
            self._last_sync_at = None
            self._last_error = None

    def captures(self) -> list[CaptureEvent]:
        with self._lock:
            return list(self._captures)

    def get(self, event_id: str) -> CaptureEvent | None:
        with self._lock:
            for capture in self._captures:
                if capture.id == event_id:
                    return capture
        return None

    def load_recent(self, device_id: str | None = None, limit: int | None = None) -> list[CaptureEvent]:
        with self._lock:
            target = device_id or self._device_id
            epoch = self._epoch
        if not target:
            raise NoDeviceBoundError("No device is bound")

        fetched = self._store.recent_captures(target, min(limit or self.limit, self.limit))
        ordered = sorted(fetched, key=lambda c: timestamp_sort_key(c.detected_at), reverse=True)[: self.limit]

        with self._lock:
            if epoch != self._epoch or target != self._device_id:
                logger.debug("discarded capture list for %s; device changed during fetch", target)
                return ordered
            self._captures = [self._with_local_flags(c) for c in ordered]
            live_ids = {c.id for c in ordered}
            self._local_flags = {k: v for k, v in self._local_flags.items() if k in live_ids}
            self._last_sync_at = now_utc_iso()
            self._last_error = None
            return list(self._captures)

    def sync(self) -> None:
        if self.device_id is None:
            return
        try:
            self.load_recent()
        except RemoteStoreError as exc:
            with self._lock:
                self._last_error = str(exc)
            logger.warning("capture sync failed, keeping %d cached captures: %s", len(self.captures()), exc)

    def delete(self, event_id: str) -> None:
        self._store.delete_capture(event_id)
        with self._lock:
            self._captures = [c for c in self._captures if c.id != event_id]
            self._local_flags.pop(event_id, None)
        logger.info("capture deleted: %s", event_id)

    def mark_viewed(self, event_id: str, viewed: bool = True) -> CaptureEvent:
        return self._set_flag(event_id, "viewed", viewed)

    def set_starred(self, event_id: str, starred: bool) -> CaptureEvent:
        return self._set_flag(event_id, "starred", starred)

    def _set_flag(self, event_id: str, flag: str, value: bool) -> CaptureEvent:
        with self._lock:
            for index, capture in enumerate(self._captures):
                if capture.id != event_id:
                    continue
                self._local_flags.setdefault(event_id, {})[flag] = bool(value)
                updated = replace(capture, **{flag: bool(value)})
                self._captures[index] = updated
                return updated
        raise KeyError(event_id)

    def _with_local_flags(self, capture: CaptureEvent) -> CaptureEvent:
        flags = self._local_flags.get(capture.id)
        if not flags:
            return capture
        return replace(capture, **flags)

    def start_polling(self, interval_s: float | None = None) -> None:
        self._poller.start(interval_s)

    def stop_polling(self) -> None:
        self._poller.stop()

    def on_background(self) -> None:
        self._poller.pause()

    def on_foreground(self) -> None:
        self._poller.resume()
        if self.device_id is not None:
            self._poller.run_now()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "device_id": self._device_id,
                "count": len(self._captures),
                "limit": self.limit,
                "last_sync_at": self._last_sync_at,
                "last_error": self._last_error,
                "polling": {
                    "running": self._poller.is_running(),
                    "paused": self._poller.paused,
                    "interval_s": self._poller.interval_s,
                },
            }

    def close(self) -> None:
        self._poller.stop()
