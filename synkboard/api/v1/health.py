"""
Health endpoint for the SynkBoard backend.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ... import __version__
from ...core.config import get_app_env
from ...core.db import get_db
from ...core.errors import guarded_call


router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("")
def health(db: Session = Depends(get_db)) -> dict:
    db_ok = guarded_call("Health DB ping", lambda: db.execute(text("SELECT 1")).scalar() == 1, fallback=False)
    return {
        "status": "ok" if db_ok else "degraded",
        "database": db_ok,
        "env": get_app_env(),
        "version": __version__,
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
    }
