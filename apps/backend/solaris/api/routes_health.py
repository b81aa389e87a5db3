from __future__ import annotations

from fastapi import APIRouter, Request

from solaris.util.security import scrub_sensitive

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
def get_health(request: Request) -> dict[str, object]:
    state = request.app.state.solaris
    settings = state.settings_store.settings
    reconciler = state.reconciler.snapshot()
    return {
        "ok": True,
        "version": "0.1.0",
        "bind": settings.bind,
        "port": settings.port,
        "backend": settings.backend,
        "data_dir": settings.data_dir,
        "settings": scrub_sensitive(settings.model_dump(mode="json")),
        "lifecycle": state.lifecycle,
        "signed_in": state.identity.current_user() is not None,
        "device_bound": reconciler["device"] is not None,
        "device_connected": reconciler["connected"],
        "polling": {
            "status": reconciler["polling"],
            "captures": state.captures.snapshot()["polling"],
        },
    }
