from __future__ import annotations

from dataclasses import dataclass

import httpx

from solaris.config.defaults import DEFAULT_PROVISIONING_URL
from solaris.errors import ProvisioningError
from solaris.util.logging import get_logger
from solaris.util.security import validate_device_id, validate_endpoint_url

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProvisioningRequest:
    user_id: str
    device_name: str
    ssid: str
    password: str

    def validate(self) -> "ProvisioningRequest":
        missing = [
            name
            for name, value in (
                ("user_id", self.user_id),
                ("device_name", self.device_name),
                ("ssid", self.ssid),
                ("password", self.password),
            )
            if not str(value).strip()
        ]
        if missing:
            raise ProvisioningError(f"Missing fields: {', '.join(missing)}")
        return self


@dataclass(frozen=True)
class ProvisioningResult:
    device_id: str
    pi_id: str | None


def provision_device(
    request: ProvisioningRequest,
    setup_url: str = DEFAULT_PROVISIONING_URL,
    timeout: float = 15.0,
    client: httpx.Client | None = None,
) -> ProvisioningResult:
    """Hand WiFi credentials and the owner id to a device on its setup hotspot."""
    request.validate()
    try:
        base = validate_endpoint_url(setup_url)
    except ValueError as exc:
        raise ProvisioningError(str(exc)) from exc

    http = client or httpx.Client(timeout=httpx.Timeout(timeout))
    try:
        response = http.post(
            f"{base}/setup",
            json={
                "user_id": request.user_id,
                "device_name": request.device_name,
                "ssid": request.ssid,
                "password": request.password,
            },
        )
    except httpx.HTTPError as exc:
        raise ProvisioningError(f"Device setup hotspot unreachable: {type(exc).__name__}") from exc
    finally:
        if client is None:
            http.close()

    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    if not response.is_success:
        raise ProvisioningError(str(payload.get("error") or f"Setup failed with status {response.status_code}"))

    try:
        device_id = validate_device_id(str(payload.get("device_id", "")))
    except ValueError as exc:
        raise ProvisioningError("Device returned an invalid device id") from exc

    pi_id = payload.get("pi_id")
    logger.info("device provisioned: %s", device_id)
    return ProvisioningResult(device_id=device_id, pi_id=str(pi_id) if pi_id else None)
