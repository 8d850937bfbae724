# vms_monitor/routers/health.py
"""
System health check endpoint.
Returns status of backend + DB + each background monitor.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from vms_monitor.database import get_db
from vms_monitor.utils.timeutils import utcnow

router = APIRouter()


@router.get("/health", summary="System health check")
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Returns:
    - Backend status
    - Database connectivity
    - Monitor status (running, last tick, consecutive failures)
    """
    result = {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "backend": "ok",
        "database": "unknown",
        "monitors": {},
    }

    # Check database
    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
    except SQLAlchemyError as e:
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"

    # Monitor loops
    for monitor in getattr(request.app.state, "monitors", []):
        status = monitor.status()
        result["monitors"][status.name] = status.model_dump(mode="json")
        if not status.running or status.consecutive_failures:
            result["status"] = "degraded"

    return result
