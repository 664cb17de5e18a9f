"""
SMAP Health Check Routes
Liveness and readiness probes
"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Dict, Any

from .. import __version__
from ..clock import isoformat, utcnow
from ..config import get_settings
from ..database import get_db
from ..logging_config import db_logger
from ..models.enums import PostStatus
from ..models.scheduled_post import ScheduledPost

router = APIRouter(prefix="/api/health", tags=["health"])

START_TIME = utcnow()


def get_uptime() -> str:
    """Get process uptime as human-readable string"""
    delta = utcnow() - START_TIME
    hours, remainder = divmod(delta.seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    if delta.days > 0:
        return f"{delta.days}d {hours}h {minutes}m"
    elif hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    else:
        return f"{minutes}m {seconds}s"


def check_database(db: Session) -> Dict[str, Any]:
    """Check database connectivity and the scheduling backlog"""
    try:
        db.execute(text("SELECT 1"))
        due = (
            db.query(ScheduledPost)
            .filter(
                ScheduledPost.status == PostStatus.SCHEDULED.value,
                ScheduledPost.scheduled_time <= utcnow(),
            )
            .count()
        )
    except SQLAlchemyError as e:
        db_logger.error("Database health check failed", error=e)
        return {
            "status": "unhealthy",
            "error": str(e),
        }
    return {
        "status": "healthy",
        "due_posts": due,
    }


# ============================================================
# ROUTES
# ============================================================

@router.get("")
def health_check():
    """Health check endpoint for load balancers and monitoring."""
    settings = get_settings()
    return {
        "status": "healthy",
        "environment": settings.environment,
        "version": __version__,
    }


@router.get("/live")
def health_live():
    """
    Liveness probe - is the service running?
    Returns 200 if the service is alive.
    """
    return {
        "ok": True,
        "status": "alive",
        "uptime": get_uptime(),
        "timestamp": isoformat(utcnow()),
    }


@router.get("/ready")
def health_ready(db: Session = Depends(get_db)):
    """
    Readiness probe - can the service reach its database?
    """
    database = check_database(db)
    ready = database["status"] == "healthy"

    return {
        "ok": ready,
        "status": "ready" if ready else "not_ready",
        "checks": {
            "database": database,
        },
        "timestamp": isoformat(utcnow()),
    }
