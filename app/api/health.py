"""
Health check, readiness probe and metrics endpoints.
Provides liveness and readiness checks for orchestration and monitoring systems.
"""
import logging
from typing import Dict, Any
from fastapi import APIRouter, HTTPException, Response, status, Depends
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.orm import Session

from api.dependencies import get_db
from api.metrics import registry, update_websocket_metrics
from api.websocket_manager import session_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

SERVICE_NAME = "VidChat API"
SERVICE_VERSION = "1.0.0"


def check_database(db: Session) -> Dict[str, Any]:
    """
    Check database connectivity.

    Args:
        db: Database session

    Returns:
        Status dict with healthy=True/False and details
    """
    try:
        db.execute(text("SELECT 1")).fetchone()
        return {"healthy": True, "message": "Database connection OK"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"healthy": False, "message": f"Database connection failed: {str(e)}"}


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """
    Liveness probe endpoint.

    Returns basic service status without checking dependencies.

    Example Response:
        {
            "status": "healthy",
            "service": "VidChat API",
            "version": "1.0.0"
        }
    """
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION
    }


@router.get("/ready", status_code=status.HTTP_200_OK)
def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness probe endpoint.

    Returns 200 OK only if the database answers, 503 otherwise.

    Example Response:
        {
            "status": "ready",
            "checks": {
                "database": {"healthy": true, "message": "Database connection OK"}
            }
        }
    """
    checks = {"database": check_database(db)}

    if all(check["healthy"] for check in checks.values()):
        return {"status": "ready", "checks": checks}

    unhealthy = [name for name, check in checks.items() if not check["healthy"]]
    logger.warning(f"Readiness check failed for: {', '.join(unhealthy)}")
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"status": "not_ready", "checks": checks}
    )


@router.get("/metrics", tags=["Metrics"])
def metrics():
    """Prometheus metrics in text exposition format."""
    update_websocket_metrics(session_registry)
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
