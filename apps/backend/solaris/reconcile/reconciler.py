from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from solaris.config.defaults import DEFAULT_STATUS_POLL_SECONDS, OPERATION_MODES
from solaris.device.client import DeviceClient
from solaris.device.health import LinkHealth
from solaris.errors import (
    ConnectivityError,
    DeviceProtocolError,
    NoDeviceBoundError,
)
from solaris.storage.models import DeviceRecord
from solaris.util.logging import get_logger
from solaris.util.security import sanitize_endpoint_url, validate_light
from solaris.util.time import format_last_activation, now_utc_iso

from . import state as sm
from .poller import PeriodicTask

logger = get_logger(__name__)

ClientFactory = Callable[[DeviceRecord], DeviceClient]


class StatusReconciler:
    def __init__(
        self,
        client_factory: ClientFactory,
        poll_interval_s: float = DEFAULT_STATUS_POLL_SECONDS,
        clock: Callable[[], str] = now_utc_iso,
    ) -> None:
        self._client_factory = client_factory
        self._clock = clock
        self._lock = threading.RLock()
        self._command_lock = threading.Lock()
        self._state = sm.ReconcilerState()
        self._health = LinkHealth()
        self._client: DeviceClient | None = None
        self._client_usage: dict[int, int] = {}
        self._retired_clients: list[DeviceClient] = []
        self._poller = PeriodicTask("status-poll", self._poll_tick, poll_interval_s)

    @property
    def state(self) -> sm.ReconcilerState:
        with self._lock:
            return self._state

    @property
    def live(self) -> sm.LiveStatus:
        with self._lock:
            return self._state.live

    @property
    def device(self) -> DeviceRecord | None:
        with self._lock:
            return self._state.device

    @property
    def poller(self) -> PeriodicTask:
        return self._poller

    def client(self) -> DeviceClient | None:
        with self._lock:
            return self._client

    def bind_device(self, device: DeviceRecord | None) -> None:
        with self._lock:
            self._state = sm.bind_device(self._state, device).state
            self._health.reset()
            previous = self._client
            self._client = self._client_factory(device) if device and device.endpoint_url else None
            if previous is not None:
                self._retired_clients.append(previous)
            self._close_idle_retired()
        if device is None:
            logger.info("status reconciler unbound")
        else:
            logger.info("status reconciler bound to %s (%s)", device.id, sanitize_endpoint_url(device.endpoint_url))

    def update_device(self, device: DeviceRecord) -> None:
        with self._lock:
            transition = sm.update_device_record(self._state, device)
            if transition.applied:
                self._state = transition.state
                return
        self.bind_device(device)

    def refresh(self) -> sm.LiveStatus:
        with self._lock:
            ticket = sm.begin_poll(self._state)
            client = self._client
            if ticket is None or client is None:
                return self._state.live
            self._acquire(client)
        try:
            self._refresh_with(ticket, client)
        finally:
            self._release(client)
        return self.live

    def _refresh_with(self, ticket: sm.PollTicket, client: DeviceClient) -> None:
        at_iso = self._clock()
        try:
            client.check_health()
        except ConnectivityError as exc:
            with self._lock:
                was_connected = self._state.live.connected
                transition = sm.poll_unreachable(self._state, ticket, at_iso)
                if transition.applied:
                    self._state = transition.state
                    self._health.register_failure(str(exc), at_iso)
            if not transition.applied:
                logger.debug("discarded unreachable result for retired endpoint %s", client.safe_endpoint)
            elif was_connected:
                logger.info("device %s went offline: %s", client.safe_endpoint, exc)
            return

        try:
            status = client.fetch_status()
        except (ConnectivityError, DeviceProtocolError) as exc:
            logger.warning("device %s status unavailable, keeping last state: %s", client.safe_endpoint, exc)
            with self._lock:
                transition = sm.poll_transient_failure(self._state, ticket, str(exc), at_iso)
                if transition.applied:
                    self._state = transition.state
            return

        with self._lock:
            was_connected = self._state.live.connected
            transition = sm.poll_succeeded(self._state, ticket, status, at_iso)
            if transition.applied:
                self._state = transition.state
                self._health.register_success(at_iso)
        if not transition.applied:
            logger.debug("discarded status from %s; state moved on since the poll started", client.safe_endpoint)
        elif not was_connected:
            logger.info("device %s online (mode=%s)", client.safe_endpoint, status.mode)

    def perform_optimistic_command(
        self,
        field: str,
        value: object,
        send: Callable[[DeviceClient], None],
        reconcile: Callable[[], object] | None = None,
    ) -> sm.LiveStatus:
        """Write ``value`` locally, send it, then confirm or roll back.

        Any error raised by ``send`` propagates after the previous value
        has been restored.
        """
        with self._command_lock:
            with self._lock:
                client = self._client
                if self._state.device is None or client is None:
                    raise NoDeviceBoundError("No device is bound")
                epoch = self._state.epoch
                previous = sm.read_field(self._state, field)
                self._state = sm.optimistic_write(self._state, field, value).state
                self._acquire(client)

            try:
                try:
                    send(client)
                except Exception as exc:
                    with self._lock:
                        self._state = sm.rollback(self._state, field, previous, epoch).state
                    logger.warning("%s=%s failed on %s, rolled back to %s: %s", field, value, client.safe_endpoint, previous, exc)
                    raise

                with self._lock:
                    transition = sm.command_acknowledged(self._state, field, epoch, self._clock())
                    self._state = transition.state
                if sm.REFRESH in transition.effects:
                    (reconcile or self.refresh)()
            finally:
                self._release(client)
        return self.live

    def apply_mode_change(self, mode: str) -> sm.LiveStatus:
        target = str(mode).strip().lower()
        if target not in OPERATION_MODES:
            raise ValueError(f"Unknown mode: {mode}")
        return self.perform_optimistic_command("mode", target, lambda client: client.set_mode(target))

    def apply_light_toggle(self, light: str, value: bool) -> sm.LiveStatus:
        name = validate_light(light)
        target = bool(value)
        return self.perform_optimistic_command(name, target, lambda client: client.set_light(name, target))

    def start_polling(self, interval_s: float | None = None) -> None:
        self._poller.start(interval_s)

    def stop_polling(self) -> None:
        self._poller.stop()

    def on_background(self) -> None:
        self._poller.pause()

    def on_foreground(self) -> None:
        self._poller.resume()
        if self.device is not None:
            self._poller.run_now()

    def _poll_tick(self) -> None:
        if self._command_lock.locked():
            logger.debug("status poll skipped; command in flight")
            return
        self.refresh()

    def _acquire(self, client: DeviceClient) -> None:
        key = id(client)
        self._client_usage[key] = self._client_usage.get(key, 0) + 1

    def _release(self, client: DeviceClient) -> None:
        with self._lock:
            key = id(client)
            remaining = self._client_usage.get(key, 1) - 1
            if remaining <= 0:
                self._client_usage.pop(key, None)
            else:
                self._client_usage[key] = remaining
            self._close_idle_retired()

    def _close_idle_retired(self) -> None:
        still_busy: list[DeviceClient] = []
        for retired in self._retired_clients:
            if self._client_usage.get(id(retired)):
                still_busy.append(retired)
                continue
            retired.close()
        self._retired_clients = still_busy

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            current = self._state
            link = self._health.as_dict()
        device = current.device
        return {
            "device": None
            if device is None
            else {
                "id": device.id,
                "owner_id": device.owner_id,
                "display_name": device.display_name,
                "endpoint_url": sanitize_endpoint_url(device.endpoint_url),
            },
            "connected": current.live.connected,
            "mode": current.live.mode,
            "foyer_light": current.live.foyer_light,
            "porch_light": current.live.porch_light,
            "stale": current.stale,
            "observed": current.observed,
            "last_activated": current.cached.last_activated,
            "last_activated_label": format_last_activation(current.cached.last_activated),
            "battery_level": current.cached.battery_level,
            "last_poll_at": current.last_poll_at,
            "last_warning": current.last_warning,
            "pending": sorted(current.pending),
            "link": link,
            "polling": {
                "running": self._poller.is_running(),
                "paused": self._poller.paused,
                "interval_s": self._poller.interval_s,
                "ticks": self._poller.ticks,
                "skipped_ticks": self._poller.skipped_ticks,
            },
        }

    def close(self) -> None:
        self._poller.stop()
        with self._lock:
            client = self._client
            self._client = None
            retired = list(self._retired_clients)
            self._retired_clients = []
        for item in [*retired, *([client] if client else [])]:
            item.close()
