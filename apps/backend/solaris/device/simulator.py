from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from solaris.config.defaults import OPERATION_MODES


@dataclass
class SimulatedDevice:
    mode: str = "automatic"
    foyer: bool = False
    porch: bool = False
    battery: int | None = 87
    healthy: bool = True
    status_ok: bool = True
    reject_commands: bool = False
    commands: list[dict[str, Any]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def status_payload(self) -> dict[str, Any]:
        with self._lock:
            payload: dict[str, Any] = {
                "ok": self.status_ok,
                "mode": self.mode,
                "lights": {"foyer": self.foyer, "porch": self.porch},
            }
            if self.battery is not None:
                payload["battery"] = self.battery
            return payload

    def apply(self, command: dict[str, Any]) -> bool:
        with self._lock:
            self.commands.append(dict(command))
            if self.reject_commands:
                return False
            if "mode" in command:
                self.mode = str(command["mode"])
            if "foyer" in command:
                self.foyer = bool(command["foyer"])
            if "porch" in command:
                self.porch = bool(command["porch"])
            return True


class ModeBody(BaseModel):
    mode: str


class ManualBody(BaseModel):
    foyer: bool | None = None
    porch: bool | None = None


class SetupBody(BaseModel):
    user_id: str
    device_name: str
    ssid: str
    password: str


class FaultsBody(BaseModel):
    healthy: bool | None = None
    status_ok: bool | None = None
    reject_commands: bool | None = None


def create_simulator_app(device: SimulatedDevice | None = None) -> FastAPI:
    """In-memory stand-in for a SOLARIS controller speaking the device HTTP API."""
    sim = device or SimulatedDevice()
    app = FastAPI(title="SOLARIS device simulator", version="0.1.0")
    app.state.device = sim

    @app.get("/health")
    def health() -> JSONResponse:
        if not sim.healthy:
            return JSONResponse({"ok": False}, status_code=503)
        return JSONResponse({"ok": True})

    @app.get("/api/status")
    def status() -> dict[str, Any]:
        if not sim.healthy:
            raise HTTPException(status_code=503, detail="offline")
        return sim.status_payload()

    @app.post("/api/mode")
    def set_mode(body: ModeBody) -> dict[str, Any]:
        if body.mode not in OPERATION_MODES:
            return {"ok": False, "error": f"unknown mode {body.mode}"}
        return {"ok": sim.apply({"mode": body.mode})}

    @app.post("/api/manual")
    def manual(body: ManualBody) -> dict[str, Any]:
        command = body.model_dump(exclude_none=True)
        if len(command) != 1:
            return {"ok": False, "error": "exactly one light per request"}
        return {"ok": sim.apply(command)}

    @app.post("/setup")
    def setup(body: SetupBody) -> dict[str, Any]:
        if not body.ssid.strip():
            raise HTTPException(status_code=400, detail="ssid required")
        return {"device_id": f"dev-{uuid4().hex[:8]}", "pi_id": f"pi-{uuid4().hex[:6]}"}

    @app.post("/_sim/faults")
    def faults(body: FaultsBody) -> dict[str, Any]:
        for key, value in body.model_dump(exclude_none=True).items():
            setattr(sim, key, value)
        return {"healthy": sim.healthy, "status_ok": sim.status_ok, "reject_commands": sim.reject_commands}

    return app
