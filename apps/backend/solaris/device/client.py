from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from solaris.config.defaults import (
    DEFAULT_HEALTH_TIMEOUT_SECONDS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    OPERATION_MODES,
)
from solaris.errors import ConnectivityError, DeviceProtocolError, RejectedCommandError
from solaris.util.logging import get_logger
from solaris.util.security import sanitize_endpoint_url, validate_light

logger = get_logger(__name__)


@dataclass(frozen=True)
class DeviceStatus:
    mode: str
    foyer: bool
    porch: bool
    battery: int | None = None

    @classmethod
    def parse(cls, payload: Any) -> "DeviceStatus":
        if not isinstance(payload, dict):
            raise DeviceProtocolError("status payload is not an object")
        if not payload.get("ok"):
            raise DeviceProtocolError("device reported not ok")

        mode = str(payload.get("mode") or "automatic").strip().lower()
        if mode not in OPERATION_MODES:
            raise DeviceProtocolError(f"unknown mode: {mode}")

        lights = payload.get("lights") or {}
        if not isinstance(lights, dict):
            raise DeviceProtocolError("lights is not an object")

        battery = payload.get("battery")
        try:
            battery_level = None if battery is None else max(0, min(100, int(battery)))
        except (TypeError, ValueError) as exc:
            raise DeviceProtocolError("battery is not numeric") from exc

        return cls(
            mode=mode,
            foyer=bool(lights.get("foyer")),
            porch=bool(lights.get("porch")),
            battery=battery_level,
        )


class DeviceClient:
    """Stateless wrapper over the device's HTTP control API."""

    def __init__(
        self,
        endpoint: str,
        health_timeout: float = DEFAULT_HEALTH_TIMEOUT_SECONDS,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.health_timeout = health_timeout
        self.request_timeout = request_timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=httpx.Timeout(request_timeout))

    @property
    def safe_endpoint(self) -> str:
        return sanitize_endpoint_url(self.endpoint)

    def video_url(self, file_name: str) -> str:
        return f"{self.endpoint}/videos/{file_name}"

    def thumbnail_url(self, file_name: str) -> str:
        return f"{self.endpoint}/thumbnails/{file_name.replace('.mp4', '.jpg')}"

    def check_health(self) -> None:
        try:
            response = self._client.get(f"{self.endpoint}/health", timeout=self.health_timeout)
        except httpx.HTTPError as exc:
            raise ConnectivityError(f"health check failed: {type(exc).__name__}") from exc
        if not response.is_success:
            raise ConnectivityError(f"health check returned {response.status_code}")

    def is_reachable(self) -> bool:
        try:
            self.check_health()
        except ConnectivityError as exc:
            logger.debug("device %s unreachable: %s", self.safe_endpoint, exc)
            return False
        return True

    def fetch_status(self) -> DeviceStatus:
        try:
            response = self._client.get(f"{self.endpoint}/api/status", timeout=self.request_timeout)
        except httpx.HTTPError as exc:
            raise ConnectivityError(f"status request failed: {type(exc).__name__}") from exc
        if not response.is_success:
            raise DeviceProtocolError(f"status returned {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise DeviceProtocolError("status returned invalid JSON") from exc
        return DeviceStatus.parse(payload)

    def set_mode(self, mode: str) -> None:
        if mode not in OPERATION_MODES:
            raise ValueError(f"Unknown mode: {mode}")
        self._command("/api/mode", {"mode": mode})

    def set_light(self, light: str, value: bool) -> None:
        self._command("/api/manual", {validate_light(light): bool(value)})

    def _command(self, path: str, body: dict[str, Any]) -> None:
        try:
            response = self._client.post(f"{self.endpoint}{path}", json=body, timeout=self.request_timeout)
        except httpx.HTTPError as exc:
            raise ConnectivityError(f"{path} failed: {type(exc).__name__}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not response.is_success:
            raise RejectedCommandError(f"{path} returned {response.status_code}")
        if not isinstance(payload, dict) or not payload.get("ok"):
            error = payload.get("error") if isinstance(payload, dict) else None
            raise RejectedCommandError(str(error or f"device rejected {path}"))

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
