"""
Health and readiness checks - verify the database and the judgment sync wiring.
"""
from fastapi import APIRouter
from sqlalchemy import text

from app.core.config import settings
from app.core.logger import logger
from app.db.database import SessionLocal
from app.services.scheduler import judgment_sync_scheduler
from app.services.service_window import service_window


def _check_database() -> tuple[str, str]:
    """Returns (status, detail). Status is 'ok' or 'error'."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return "ok", "Database reachable"
    except Exception as e:
        logger.exception("Database check failed")
        return "error", f"Database: {str(e)}"
    finally:
        db.close()


def _check_registry_credentials() -> tuple[str, str]:
    if settings.JUDICIAL_ACCOUNT and settings.JUDICIAL_PASSWORD:
        return "ok", f"Credentials set for {settings.JUDICIAL_API_BASE_URL}"
    return "error", "JUDICIAL_ACCOUNT / JUDICIAL_PASSWORD not set"


router = APIRouter()


@router.get("/ready")
def readiness():
    """
    Check that the sync can run:
    - database: SELECT 1
    - registry: credentials configured (no network call, the registry is nightly only)
    - scheduler: running when enabled
    """
    db_status, db_detail = _check_database()
    registry_status, registry_detail = _check_registry_credentials()
    scheduler_ok = judgment_sync_scheduler.running or not settings.JUDGMENT_SYNC_SCHEDULER_ENABLED

    healthy = db_status == "ok" and registry_status == "ok" and scheduler_ok
    return {
        "status": "healthy" if healthy else "degraded",
        "database": {"status": db_status, "detail": db_detail},
        "registry": {
            "status": registry_status,
            "detail": registry_detail,
            "window": service_window.describe(),
            "available_now": service_window.is_available(),
        },
        "scheduler": {
            "enabled": settings.JUDGMENT_SYNC_SCHEDULER_ENABLED,
            "running": judgment_sync_scheduler.running,
        },
    }
