from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from solaris.util.paths import bootstrap_config_path, ensure_data_tree, resolve_data_dir

from .defaults import (
    APP_VERSION,
    DEFAULT_BACKEND,
    DEFAULT_CAPTURE_LIMIT,
    DEFAULT_CAPTURE_POLL_SECONDS,
    DEFAULT_HEALTH_TIMEOUT_SECONDS,
    DEFAULT_LOCAL_USER_EMAIL,
    DEFAULT_LOCAL_USER_ID,
    DEFAULT_PROVISIONING_URL,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_STATUS_POLL_SECONDS,
    default_data_dir,
)
from .schema import AppSettings


class SettingsStore:
    def __init__(self, cli_data_dir: str | None = None) -> None:
        self.bootstrap_path = bootstrap_config_path()
        self.bootstrap_path.parent.mkdir(parents=True, exist_ok=True)
        bootstrap = self._read_json(self.bootstrap_path, default={})

        configured = bootstrap.get("data_dir")
        chosen_dir = resolve_data_dir(cli_data_dir or configured or str(default_data_dir()))
        self._data_tree = ensure_data_tree(chosen_dir)

        self.settings_path = self._data_tree["config"] / "settings.json"
        raw_settings = self._read_json(self.settings_path, default={})
        migrated = migrate_settings(raw_settings, str(chosen_dir))
        self._settings = AppSettings.model_validate(migrated)
        self._settings.data_dir = str(chosen_dir)
        self.save()
        self._write_json(self.bootstrap_path, {"data_dir": str(chosen_dir)})

    @property
    def settings(self) -> AppSettings:
        return self._settings

    def update(self, **changes: Any) -> AppSettings:
        merged = self._settings.model_dump()
        merged.update(changes)
        self._settings = AppSettings.model_validate(merged)
        self.save()
        return self._settings

    def save(self) -> None:
        payload = self._settings.model_dump(mode="json")
        self._write_json(self.settings_path, payload)

    @staticmethod
    def _read_json(path: Path, default: dict[str, Any]) -> dict[str, Any]:
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return default

    @staticmethod
    def _write_json(path: Path, payload: dict[str, Any]) -> None:
        path.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")


def _default_polling() -> dict[str, Any]:
    return {
        "status_seconds": DEFAULT_STATUS_POLL_SECONDS,
        "captures_seconds": DEFAULT_CAPTURE_POLL_SECONDS,
        "health_timeout_seconds": DEFAULT_HEALTH_TIMEOUT_SECONDS,
        "request_timeout_seconds": DEFAULT_REQUEST_TIMEOUT_SECONDS,
        "capture_limit": DEFAULT_CAPTURE_LIMIT,
    }


def migrate_settings(raw: dict[str, Any], data_dir: str) -> dict[str, Any]:
    if not raw:
        return {
            "version": APP_VERSION,
            "data_dir": data_dir,
            "backend": DEFAULT_BACKEND,
            "device_endpoint": None,
            "provisioning_url": DEFAULT_PROVISIONING_URL,
            "polling": _default_polling(),
            "supabase": {"url": None, "anon_key": None, "session_ref": None},
            "local_identity": {"user_id": DEFAULT_LOCAL_USER_ID, "email": DEFAULT_LOCAL_USER_EMAIL},
        }

    raw.setdefault("version", APP_VERSION)
    raw.setdefault("data_dir", data_dir)
    raw.setdefault("backend", DEFAULT_BACKEND)
    raw.setdefault("device_endpoint", None)
    raw.setdefault("provisioning_url", DEFAULT_PROVISIONING_URL)
    polling = raw.setdefault("polling", {})
    for key, value in _default_polling().items():
        polling.setdefault(key, value)
    raw.setdefault("supabase", {"url": None, "anon_key": None, "session_ref": None})
    raw.setdefault("local_identity", {"user_id": DEFAULT_LOCAL_USER_ID, "email": DEFAULT_LOCAL_USER_EMAIL})

    # Version 0 files kept the tunnel URL at the top level as "pi_url".
    legacy_url = raw.pop("pi_url", None)
    if legacy_url and not raw.get("device_endpoint"):
        raw["device_endpoint"] = legacy_url
    return raw
