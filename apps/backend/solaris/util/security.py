from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import SplitResult, urlsplit, urlunsplit

from cryptography.fernet import Fernet, InvalidToken

URL_PASSWORD_RE = re.compile(r"(https?://[^:@/\s]+:)([^@/\s]+)(@)", re.IGNORECASE)
PASSWORD_PAIR_RE = re.compile(r"(password\"?\s*[=:]\s*\"?)([^\s,;\"]+)", re.IGNORECASE)
TOKEN_RE = re.compile(r"(token\"?\s*[=:]\s*\"?)([^\s,;\"]+)", re.IGNORECASE)
APIKEY_RE = re.compile(r"(apikey\"?\s*[=:]\s*\"?)([^\s,;\"]+)", re.IGNORECASE)
BEARER_RE = re.compile(r"(bearer\s+)([A-Za-z0-9._~+/=-]+)", re.IGNORECASE)
JWT_RE = re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+")
DEVICE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$")
LIGHT_NAMES = frozenset({"foyer", "porch"})

_SENSITIVE_KEYS = ("password", "token", "secret", "apikey", "api_key", "anon_key", "authorization")


def sanitize_endpoint_url(url: str) -> str:
    try:
        parts: SplitResult = urlsplit(url)
        if parts.scheme.lower() not in {"http", "https"}:
            return url
        hostname = parts.hostname or ""
        port = f":{parts.port}" if parts.port else ""
        return urlunsplit((parts.scheme, f"{hostname}{port}", parts.path, "", ""))
    except ValueError:
        return URL_PASSWORD_RE.sub(r"\1***\3", url)


def validate_endpoint_url(value: str) -> str:
    url = str(value).strip()
    if not url or any(ch.isspace() for ch in url):
        raise ValueError("Invalid device endpoint")

    parts: SplitResult = urlsplit(url)
    if parts.scheme.lower() not in {"http", "https"}:
        raise ValueError("Invalid device endpoint")
    if not parts.hostname:
        raise ValueError("Invalid device endpoint")
    if parts.fragment or parts.query:
        raise ValueError("Invalid device endpoint")
    if parts.username or parts.password:
        raise ValueError("Invalid device endpoint")
    try:
        _ = parts.port
    except ValueError as exc:
        raise ValueError("Invalid device endpoint") from exc

    return url.rstrip("/")


def validate_device_id(device_id: str) -> str:
    value = str(device_id)
    if not DEVICE_ID_RE.fullmatch(value):
        raise ValueError("Invalid device id")
    return value


def validate_light(light: str) -> str:
    value = str(light).strip().lower()
    if value not in LIGHT_NAMES:
        raise ValueError(f"Unknown light: {light}")
    return value


def redact_secrets(text: str) -> str:
    text = URL_PASSWORD_RE.sub(r"\1***\3", text)
    text = BEARER_RE.sub(r"\1***", text)
    text = JWT_RE.sub("***", text)
    text = PASSWORD_PAIR_RE.sub(r"\1***", text)
    text = TOKEN_RE.sub(r"\1***", text)
    text = APIKEY_RE.sub(r"\1***", text)
    return text


def scrub_sensitive(obj: Any) -> Any:
    if isinstance(obj, dict):
        out: dict[str, Any] = {}
        for key, value in obj.items():
            lowered = str(key).lower()
            if any(marker in lowered for marker in _SENSITIVE_KEYS):
                out[key] = "***" if value else value
            else:
                out[key] = scrub_sensitive(value)
        return out
    if isinstance(obj, list):
        return [scrub_sensitive(v) for v in obj]
    if isinstance(obj, str):
        return redact_secrets(obj)
    return obj


@dataclass
class SecretReference:
    provider: str
    ref: str

    def as_dict(self) -> dict[str, str]:
        return {"provider": self.provider, "ref": self.ref}


class SecretStore:
    def __init__(self, data_dir: Path, service_name: str = "solaris") -> None:
        self.service_name = service_name
        config_dir = data_dir / "config"
        config_dir.mkdir(parents=True, exist_ok=True)
        self._secrets_file = config_dir / "secrets.enc.json"
        self._key_file = config_dir / "secrets.key"

    def _load_key(self) -> bytes:
        if self._key_file.exists():
            return self._key_file.read_bytes()
        key = Fernet.generate_key()
        self._key_file.write_bytes(key)
        try:
            os.chmod(self._key_file, 0o600)
        except PermissionError:
            pass
        return key

    def _read_map(self) -> dict[str, str]:
        if not self._secrets_file.exists():
            return {}
        return json.loads(self._secrets_file.read_text(encoding="utf-8"))

    def _write_map(self, payload: dict[str, str]) -> None:
        self._secrets_file.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")

    def store(self, name: str, value: str) -> SecretReference:
        try:
            import keyring  # type: ignore

            keyring.set_password(self.service_name, name, value)
            return SecretReference(provider="keyring", ref=name)
        except Exception:
            pass

        fernet = Fernet(self._load_key())
        payload = self._read_map()
        payload[name] = fernet.encrypt(value.encode("utf-8")).decode("utf-8")
        self._write_map(payload)
        return SecretReference(provider="encrypted_file", ref=name)

    def get(self, reference: dict[str, str] | SecretReference | None) -> str | None:
        if reference is None:
            return None
        if isinstance(reference, SecretReference):
            provider = reference.provider
            ref = reference.ref
        else:
            provider = reference.get("provider", "")
            ref = reference.get("ref", "")

        if not ref:
            return None

        if provider == "keyring":
            try:
                import keyring  # type: ignore

                return keyring.get_password(self.service_name, ref)
            except Exception:
                return None

        if provider == "encrypted_file":
            token = self._read_map().get(ref)
            if not token:
                return None
            fernet = Fernet(self._load_key())
            try:
                return fernet.decrypt(token.encode("utf-8")).decode("utf-8")
            except InvalidToken:
                return None

        return None

    def delete(self, reference: dict[str, str] | SecretReference | None) -> None:
        if reference is None:
            return
        if isinstance(reference, SecretReference):
            reference = reference.as_dict()
        provider = reference.get("provider", "")
        ref = reference.get("ref", "")
        if not ref:
            return

        if provider == "keyring":
            try:
                import keyring  # type: ignore

                keyring.delete_password(self.service_name, ref)
            except Exception:
                pass
            return

        payload = self._read_map()
        if payload.pop(ref, None) is not None:
            self._write_map(payload)
