from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from solaris.storage.models import CaptureEvent

from .errors import translate_errors

router = APIRouter(prefix="/captures", tags=["captures"])


class ViewedPayload(BaseModel):
    viewed: bool = True


class StarredPayload(BaseModel):
    starred: bool


def _serialize(capture: CaptureEvent, request: Request) -> dict[str, object]:
    row = capture.as_dict()
    client = request.app.state.solaris.reconciler.client()
    row["video_url"] = client.video_url(capture.file_name) if client and capture.file_name else None
    row["thumbnail_url"] = client.thumbnail_url(capture.file_name) if client and capture.file_name else None
    return row


def _listing(request: Request) -> dict[str, object]:
    captures = request.app.state.solaris.captures
    items = [_serialize(c, request) for c in captures.captures()]
    return {"items": items, "total": len(items), "sync": captures.snapshot()}


@router.get("")
def list_captures(request: Request) -> dict[str, object]:
    return _listing(request)


@router.post("/refresh")
def refresh_captures(request: Request) -> dict[str, object]:
    with translate_errors():
        request.app.state.solaris.captures.load_recent()
    return _listing(request)


@router.delete("/{event_id}")
def delete_capture(event_id: str, request: Request) -> dict[str, object]:
    with translate_errors():
        request.app.state.solaris.captures.delete(event_id)
    return {"ok": True, "event_id": event_id}


@router.post("/{event_id}/viewed")
def mark_viewed(event_id: str, payload: ViewedPayload, request: Request) -> dict[str, object]:
    try:
        capture = request.app.state.solaris.captures.mark_viewed(event_id, payload.viewed)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Capture not found") from exc
    return _serialize(capture, request)


@router.post("/{event_id}/starred")
def set_starred(event_id: str, payload: StarredPayload, request: Request) -> dict[str, object]:
    try:
        capture = request.app.state.solaris.captures.set_starred(event_id, payload.starred)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Capture not found") from exc
    return _serialize(capture, request)
