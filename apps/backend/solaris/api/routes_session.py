from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from .errors import translate_errors

router = APIRouter(prefix="/session", tags=["session"])


class CredentialsPayload(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


def _session(request: Request) -> dict[str, object]:
    state = request.app.state.solaris
    user = state.identity.current_user()
    return {
        "signed_in": user is not None,
        "user": None if user is None else {"id": user.id, "email": user.email},
        "backend": state.settings_store.settings.backend,
    }


@router.get("")
def get_session(request: Request) -> dict[str, object]:
    return _session(request)


@router.post("/sign-in")
def sign_in(payload: CredentialsPayload, request: Request) -> dict[str, object]:
    with translate_errors():
        request.app.state.solaris.identity.sign_in(payload.email, payload.password)
    return _session(request)


@router.post("/sign-up")
def sign_up(payload: CredentialsPayload, request: Request) -> dict[str, object]:
    with translate_errors():
        user = request.app.state.solaris.identity.sign_up(payload.email, payload.password)
    body = _session(request)
    body["confirmation_required"] = user is None
    return body


@router.post("/sign-out")
def sign_out(request: Request) -> dict[str, object]:
    with translate_errors():
        request.app.state.solaris.identity.sign_out()
    return _session(request)
