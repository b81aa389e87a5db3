from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from solaris.errors import RemoteStoreError
from solaris.util.logging import get_logger

from .base import EventStore
from .models import BatteryLog, CaptureEvent, DeviceRecord, LuxLog, TriggerEvent

logger = get_logger(__name__)


class RestEventStore(EventStore):
    """Event history and device registry served by a Supabase PostgREST endpoint."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        access_token: Callable[[], str | None],
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._anon_key = anon_key
        self._access_token = access_token
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout))

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        token = self._access_token() or self._anon_key
        headers = {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            response = self._client.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._headers(prefer),
            )
        except httpx.HTTPError as exc:
            logger.warning("event store %s %s failed: %s", method, table, type(exc).__name__)
            raise RemoteStoreError(f"{method} {table} failed: {type(exc).__name__}") from exc

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.warning("event store %s %s returned %s: %s", method, table, response.status_code, detail)
            raise RemoteStoreError(f"{method} {table} returned {response.status_code}: {detail}")

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteStoreError(f"{method} {table} returned invalid JSON") from exc

    def _rows(self, payload: Any, table: str) -> list[dict[str, Any]]:
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise RemoteStoreError(f"unexpected {table} payload")
        return [row for row in payload if isinstance(row, dict)]

    def recent_captures(self, device_id: str, limit: int) -> list[CaptureEvent]:
        payload = self._request(
            "GET",
            "motion_events",
            params={
                "select": "*",
                "device_id": f"eq.{device_id}",
                "order": "detected_at.desc",
                "limit": str(max(1, limit)),
            },
        )
        return [CaptureEvent.from_row(row) for row in self._rows(payload, "motion_events")]

    def delete_capture(self, event_id: str) -> None:
        self._request("DELETE", "motion_events", params={"id": f"eq.{event_id}"}, prefer="return=minimal")

    def insert_capture(self, event: CaptureEvent) -> None:
        self._request("POST", "motion_events", json_body=event.to_row(), prefer="return=minimal")

    def device_for_owner(self, owner_id: str) -> DeviceRecord | None:
        payload = self._request(
            "GET",
            "devices",
            params={"select": "*", "user_id": f"eq.{owner_id}", "limit": "1"},
        )
        rows = self._rows(payload, "devices")
        if not rows:
            return None
        return DeviceRecord.from_row(rows[0])

    def register_device(self, device: DeviceRecord) -> DeviceRecord:
        payload = self._request(
            "POST",
            "devices",
            json_body=device.to_row(),
            prefer="resolution=merge-duplicates,return=representation",
        )
        rows = self._rows(payload, "devices")
        return DeviceRecord.from_row(rows[0]) if rows else device

    def rename_device(self, device_id: str, display_name: str) -> DeviceRecord:
        payload = self._request(
            "PATCH",
            "devices",
            params={"id": f"eq.{device_id}"},
            json_body={"name": display_name},
            prefer="return=representation",
        )
        rows = self._rows(payload, "devices")
        if not rows:
            raise RemoteStoreError(f"device not found: {device_id}")
        return DeviceRecord.from_row(rows[0])

    def trigger_events_since(self, since_iso: str) -> list[TriggerEvent]:
        payload = self._request(
            "GET",
            "trigger_events",
            params={"select": "*", "created_at": f"gte.{since_iso}"},
        )
        return [
            TriggerEvent(id=str(row.get("id", "")), type=str(row.get("type", "")), created_at=str(row.get("created_at", "")))
            for row in self._rows(payload, "trigger_events")
        ]

    def battery_logs_since(self, since_iso: str) -> list[BatteryLog]:
        payload = self._request(
            "GET",
            "battery_logs",
            params={"select": "time,percentage", "created_at": f"gte.{since_iso}", "order": "time.asc"},
        )
        return [
            BatteryLog(time=str(row.get("time", "")), percentage=float(row.get("percentage") or 0))
            for row in self._rows(payload, "battery_logs")
        ]

    def lux_logs_since(self, since_iso: str) -> list[LuxLog]:
        payload = self._request(
            "GET",
            "lux_logs",
            params={"select": "time,value", "created_at": f"gte.{since_iso}", "order": "time.asc"},
        )
        return [
            LuxLog(time=str(row.get("time", "")), value=float(row.get("value") or 0))
            for row in self._rows(payload, "lux_logs")
        ]

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        return str(payload.get("message") or payload.get("error") or payload.get("msg") or payload)[:200]
    return str(payload)[:200]
