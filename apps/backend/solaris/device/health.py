from __future__ import annotations

from dataclasses import dataclass


@dataclass
class LinkHealth:
    failures: int = 0
    last_success_iso: str | None = None
    last_failure_iso: str | None = None
    last_failure_reason: str | None = None

    def register_failure(self, reason: str, at_iso: str) -> int:
        self.failures += 1
        self.last_failure_iso = at_iso
        self.last_failure_reason = reason
        return self.failures

    def register_success(self, at_iso: str) -> None:
        self.failures = 0
        self.last_success_iso = at_iso
        self.last_failure_reason = None

    def reset(self) -> None:
        self.failures = 0
        self.last_success_iso = None
        self.last_failure_iso = None
        self.last_failure_reason = None

    def as_dict(self) -> dict[str, object]:
        return {
            "consecutive_failures": self.failures,
            "last_success": self.last_success_iso,
            "last_failure": self.last_failure_iso,
            "last_failure_reason": self.last_failure_reason,
        }
