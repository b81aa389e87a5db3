from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, HTTPException, Request

from solaris.metrics import collect_daily_metrics

from .errors import translate_errors

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("")
def get_metrics(request: Request, day: str | None = None) -> dict[str, object]:
    target: dt.date | None = None
    if day:
        try:
            target = dt.date.fromisoformat(day)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="day must be YYYY-MM-DD") from exc
    with translate_errors():
        metrics = collect_daily_metrics(request.app.state.solaris.store, target)
    return metrics.as_dict()
