from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from solaris.util.security import LIGHT_NAMES

from .errors import translate_errors

router = APIRouter(tags=["status"])


class ModePayload(BaseModel):
    mode: Literal["automatic", "manual", "scheduled"]


class LightPayload(BaseModel):
    on: bool


class LifecyclePayload(BaseModel):
    state: Literal["active", "background", "inactive"]


@router.get("/status")
def get_status(request: Request) -> dict[str, object]:
    return request.app.state.solaris.reconciler.snapshot()


@router.post("/status/refresh")
def refresh_status(request: Request) -> dict[str, object]:
    reconciler = request.app.state.solaris.reconciler
    if reconciler.device is None:
        raise HTTPException(status_code=404, detail="No device is bound")
    reconciler.refresh()
    return reconciler.snapshot()


@router.post("/status/mode")
def set_mode(payload: ModePayload, request: Request) -> dict[str, object]:
    reconciler = request.app.state.solaris.reconciler
    with translate_errors():
        reconciler.apply_mode_change(payload.mode)
    return reconciler.snapshot()


@router.post("/status/lights/{light}")
def set_light(light: str, payload: LightPayload, request: Request) -> dict[str, object]:
    if light not in LIGHT_NAMES:
        raise HTTPException(status_code=404, detail="Unknown light")
    reconciler = request.app.state.solaris.reconciler
    with translate_errors():
        reconciler.apply_light_toggle(light, payload.on)
    return reconciler.snapshot()


@router.post("/lifecycle")
def set_lifecycle(payload: LifecyclePayload, request: Request) -> dict[str, object]:
    state = request.app.state.solaris
    state.set_lifecycle(payload.state)
    return {"ok": True, "lifecycle": state.lifecycle}
