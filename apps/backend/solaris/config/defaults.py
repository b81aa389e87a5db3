from __future__ import annotations

from pathlib import Path

from solaris.util.paths import platform_default_data_dir

APP_VERSION = 1
DEFAULT_BIND = "127.0.0.1"
DEFAULT_PORT = 8766
DEFAULT_LOG_LEVEL = "info"
DEFAULT_BACKEND = "local"
DEFAULT_STATUS_POLL_SECONDS = 2.0
DEFAULT_CAPTURE_POLL_SECONDS = 30.0
DEFAULT_HEALTH_TIMEOUT_SECONDS = 5.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0
DEFAULT_CAPTURE_LIMIT = 20
DEFAULT_PROVISIONING_URL = "http://192.168.4.1:5000"
DEFAULT_LOCAL_USER_ID = "local-user"
DEFAULT_LOCAL_USER_EMAIL = "local@solaris.invalid"
DEFAULT_CAPTURE_LOCATION = "Front Door"
OPERATION_MODES = ("automatic", "manual", "scheduled")


def default_data_dir() -> Path:
    return platform_default_data_dir()
