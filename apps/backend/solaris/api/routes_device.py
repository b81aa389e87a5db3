from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from solaris.storage.models import DeviceRecord
from solaris.util.security import sanitize_endpoint_url

from .errors import translate_errors

router = APIRouter(prefix="/device", tags=["device"])


class DevicePayload(BaseModel):
    display_name: str = Field(min_length=1)
    endpoint_url: str
    device_id: str | None = None


class RenamePayload(BaseModel):
    display_name: str = Field(min_length=1)


class PairPayload(BaseModel):
    device_name: str
    ssid: str
    password: str
    endpoint_url: str


def _describe(device: DeviceRecord) -> dict[str, object]:
    row = device.as_dict()
    row["endpoint_url"] = sanitize_endpoint_url(device.endpoint_url)
    return row


@router.get("")
def get_device(request: Request) -> dict[str, object]:
    device = request.app.state.solaris.reconciler.device
    if device is None:
        raise HTTPException(status_code=404, detail="No device is bound")
    return _describe(device)


@router.post("")
def register_device(payload: DevicePayload, request: Request) -> dict[str, object]:
    state = request.app.state.solaris
    with translate_errors():
        device = state.register_device(payload.display_name, payload.endpoint_url, device_id=payload.device_id)
    return {"ok": True, "device": _describe(device)}


@router.patch("")
def rename_device(payload: RenamePayload, request: Request) -> dict[str, object]:
    state = request.app.state.solaris
    with translate_errors():
        device = state.rename_device(payload.display_name)
    return {"ok": True, "device": _describe(device)}


@router.post("/pair")
def pair_device(payload: PairPayload, request: Request) -> dict[str, object]:
    state = request.app.state.solaris
    with translate_errors():
        device = state.pair_device(payload.device_name, payload.ssid, payload.password, payload.endpoint_url)
    return {"ok": True, "device": _describe(device)}
