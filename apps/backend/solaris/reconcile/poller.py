from __future__ import annotations

import threading
from collections.abc import Callable

from solaris.util.logging import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """Repeating background tick with skip-on-overlap semantics.

    ``start`` replaces any running loop, ``stop`` joins it. While paused the
    loop keeps its thread but does not tick. A tick that would overlap a tick
    still in progress is skipped and counted, never queued.
    """

    def __init__(self, name: str, action: Callable[[], object], interval_s: float) -> None:
        self.name = name
        self._action = action
        self._interval_s = max(0.01, float(interval_s))
        self._lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_event: threading.Event | None = None
        self._paused = False
        self.ticks = 0
        self.skipped_ticks = 0

    @property
    def interval_s(self) -> float:
        return self._interval_s

    @property
    def paused(self) -> bool:
        return self._paused

    def is_running(self) -> bool:
        thread = self._thread
        return bool(thread and thread.is_alive())

    def start(self, interval_s: float | None = None) -> None:
        with self._lock:
            self._stop_locked()
            if interval_s is not None:
                self._interval_s = max(0.01, float(interval_s))
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run_loop,
                args=(stop_event, self._interval_s),
                name=f"solaris-{self.name}",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            thread.start()
        logger.debug("%s loop started every %.2fs", self.name, self._interval_s)

    def stop(self, timeout: float = 3.0) -> None:
        with self._lock:
            self._stop_locked(timeout)

    def _stop_locked(self, timeout: float = 3.0) -> None:
        stop_event = self._stop_event
        thread = self._thread
        self._stop_event = None
        self._thread = None
        if stop_event is not None:
            stop_event.set()
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("%s loop did not exit within %.1fs", self.name, timeout)

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def run_now(self) -> bool:
        """Run one tick in the caller's thread unless a tick is already in flight."""
        return self._tick()

    def _tick(self) -> bool:
        if not self._tick_lock.acquire(blocking=False):
            self.skipped_ticks += 1
            logger.debug("%s tick skipped; previous tick still running", self.name)
            return False
        try:
            self.ticks += 1
            self._action()
        except Exception:
            logger.exception("%s tick failed", self.name)
        finally:
            self._tick_lock.release()
        return True

    def _run_loop(self, stop_event: threading.Event, interval_s: float) -> None:
        while not stop_event.wait(interval_s):
            if self._paused:
                continue
            self._tick()
