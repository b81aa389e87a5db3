from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from solaris.util.security import validate_endpoint_url

from .defaults import (
    APP_VERSION,
    DEFAULT_BIND,
    DEFAULT_CAPTURE_LIMIT,
    DEFAULT_CAPTURE_POLL_SECONDS,
    DEFAULT_HEALTH_TIMEOUT_SECONDS,
    DEFAULT_LOCAL_USER_EMAIL,
    DEFAULT_LOCAL_USER_ID,
    DEFAULT_PORT,
    DEFAULT_PROVISIONING_URL,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_STATUS_POLL_SECONDS,
)


class PollingConfig(BaseModel):
    status_seconds: float = DEFAULT_STATUS_POLL_SECONDS
    captures_seconds: float = DEFAULT_CAPTURE_POLL_SECONDS
    health_timeout_seconds: float = DEFAULT_HEALTH_TIMEOUT_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    capture_limit: int = DEFAULT_CAPTURE_LIMIT

    @field_validator("status_seconds", "captures_seconds")
    @classmethod
    def clamp_interval(cls, value: float) -> float:
        return max(0.25, float(value))

    @field_validator("health_timeout_seconds", "request_timeout_seconds")
    @classmethod
    def positive_timeout(cls, value: float) -> float:
        return max(0.1, float(value))

    @field_validator("capture_limit")
    @classmethod
    def clamp_capture_limit(cls, value: int) -> int:
        return min(200, max(1, value))


class SupabaseConfig(BaseModel):
    url: str | None = None
    anon_key: str | None = None
    session_ref: dict[str, str] | None = None

    @field_validator("url")
    @classmethod
    def strip_url(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip().rstrip("/")


class LocalIdentityConfig(BaseModel):
    user_id: str = DEFAULT_LOCAL_USER_ID
    email: str = DEFAULT_LOCAL_USER_EMAIL


class AppSettings(BaseModel):
    version: int = APP_VERSION
    data_dir: str
    bind: str = DEFAULT_BIND
    port: int = DEFAULT_PORT
    backend: Literal["local", "supabase"] = "local"
    device_endpoint: str | None = None
    provisioning_url: str = DEFAULT_PROVISIONING_URL
    polling: PollingConfig = Field(default_factory=PollingConfig)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)
    local_identity: LocalIdentityConfig = Field(default_factory=LocalIdentityConfig)

    @field_validator("data_dir")
    @classmethod
    def data_dir_not_empty(cls, value: str) -> str:
        if not value.strip():
            msg = "data_dir cannot be empty"
            raise ValueError(msg)
        return value

    @field_validator("device_endpoint")
    @classmethod
    def valid_endpoint(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return validate_endpoint_url(value)
