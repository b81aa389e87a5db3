from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException

from solaris.errors import (
    AuthError,
    ConnectivityError,
    DeviceProtocolError,
    NoDeviceBoundError,
    ProvisioningError,
    RejectedCommandError,
    RemoteStoreError,
)

_STATUS_BY_ERROR: tuple[tuple[type[Exception], int], ...] = (
    (NoDeviceBoundError, 404),
    (RejectedCommandError, 409),
    (ConnectivityError, 503),
    (DeviceProtocolError, 502),
    (RemoteStoreError, 502),
    (AuthError, 401),
    (ProvisioningError, 400),
    (ValueError, 400),
)


@contextmanager
def translate_errors() -> Iterator[None]:
    try:
        yield
    except tuple(error for error, _ in _STATUS_BY_ERROR) as exc:
        status = next(code for error, code in _STATUS_BY_ERROR if isinstance(exc, error))
        raise HTTPException(status_code=status, detail=str(exc)) from exc
