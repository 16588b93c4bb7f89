"""System health endpoint."""

from __future__ import annotations

import time

from fastapi import APIRouter

from forecastlens.api.deps import app_state

router = APIRouter()

_start_time = time.time()


@router.get("/system/health")
def health() -> dict:
    """Database connectivity, upstream configuration, and process uptime."""
    db_ok = app_state.db.health_check() if app_state.db is not None else False
    return {
        "status": "healthy" if db_ok else "degraded",
        "database": db_ok,
        "forecastSource": app_state.allora is not None,
        "uptimeSeconds": round(time.time() - _start_time, 1),
    }
