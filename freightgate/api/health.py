"""
Health and diagnostics API.

Provides lightweight endpoints for operational monitoring without exposing secrets.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from freightgate.core.database import get_engine

logger = logging.getLogger("freightgate")

router = APIRouter(tags=["health"])

REQUIRED_TABLES = [
    "profiles",
    "drivers",
    "freights",
    "subscription_plans",
    "subscriptions",
    "contact_view_events",
]


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: DB connectivity + required tables."""
    try:
        engine = get_engine()
        present = set(inspect(engine).get_table_names())
    except Exception as exc:
        logger.warning("readyz.db_unavailable", extra={"error_message": str(exc)})
        return JSONResponse(status_code=503, content={"status": "unavailable", "missing_tables": REQUIRED_TABLES})

    missing = [name for name in REQUIRED_TABLES if name not in present]
    if missing:
        return JSONResponse(status_code=503, content={"status": "unavailable", "missing_tables": missing})
    return {"status": "ready"}
