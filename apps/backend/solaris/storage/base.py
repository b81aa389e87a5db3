from __future__ import annotations

from abc import ABC, abstractmethod

from .models import BatteryLog, CaptureEvent, DeviceRecord, LuxLog, TriggerEvent


class EventStore(ABC):
    """Remote event history and device registry.

    Implementations raise :class:`solaris.errors.RemoteStoreError` for every
    failed call and never return partial results.
    """

    @abstractmethod
    def recent_captures(self, device_id: str, limit: int) -> list[CaptureEvent]:
        raise NotImplementedError

    @abstractmethod
    def delete_capture(self, event_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def insert_capture(self, event: CaptureEvent) -> None:
        raise NotImplementedError

    @abstractmethod
    def device_for_owner(self, owner_id: str) -> DeviceRecord | None:
        raise NotImplementedError

    @abstractmethod
    def register_device(self, device: DeviceRecord) -> DeviceRecord:
        raise NotImplementedError

    @abstractmethod
    def rename_device(self, device_id: str, display_name: str) -> DeviceRecord:
        raise NotImplementedError

    @abstractmethod
    def trigger_events_since(self, since_iso: str) -> list[TriggerEvent]:
        raise NotImplementedError

    @abstractmethod
    def battery_logs_since(self, since_iso: str) -> list[BatteryLog]:
        raise NotImplementedError

    @abstractmethod
    def lux_logs_since(self, since_iso: str) -> list[LuxLog]:
        raise NotImplementedError

    def close(self) -> None:
        return None
