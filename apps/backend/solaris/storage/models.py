from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from solaris.config.defaults import DEFAULT_CAPTURE_LOCATION


@dataclass(frozen=True)
class DeviceRecord:
    id: str
    owner_id: str
    display_name: str
    endpoint_url: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "DeviceRecord":
        return cls(
            id=str(row["id"]),
            owner_id=str(row.get("user_id") or ""),
            display_name=str(row.get("name") or "SOLARIS"),
            endpoint_url=str(row.get("pi_url") or "").rstrip("/"),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.owner_id,
            "name": self.display_name,
            "pi_url": self.endpoint_url,
        }

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CaptureEvent:
    id: str
    device_id: str
    file_name: str
    file_path: str
    file_size_bytes: int
    duration_seconds: float
    detected_at: str
    location: str
    thumbnail: str | None
    viewed: bool
    starred: bool

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CaptureEvent":
        return cls(
            id=str(row["id"]),
            device_id=str(row.get("device_id") or ""),
            file_name=str(row.get("file_name") or ""),
            file_path=str(row.get("file_path") or ""),
            file_size_bytes=int(row.get("file_size") or 0),
            duration_seconds=float(row.get("duration") or 0),
            detected_at=str(row.get("detected_at") or ""),
            location=str(row.get("location") or DEFAULT_CAPTURE_LOCATION),
            thumbnail=row.get("thumbnail_data") or None,
            viewed=bool(row.get("viewed") or False),
            starred=bool(row.get("starred") or False),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "device_id": self.device_id,
            "file_name": self.file_name,
            "file_path": self.file_path,
            "file_size": self.file_size_bytes,
            "duration": self.duration_seconds,
            "detected_at": self.detected_at,
            "location": self.location,
            "thumbnail_data": self.thumbnail,
            "viewed": self.viewed,
            "starred": self.starred,
        }

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TriggerEvent:
    id: str
    type: str
    created_at: str


@dataclass(frozen=True)
class BatteryLog:
    time: str
    percentage: float


@dataclass(frozen=True)
class LuxLog:
    time: str
    value: float
