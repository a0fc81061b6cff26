"""
Health Check Endpoints

- /health/live - Liveness check (is process running)
- /health/ready - Readiness check (database reachable)
- /health/detailed - Component checks (admin only)
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime, timezone
import time

from ..database import get_db
from ..config import settings
from ..utils.dependencies import CurrentUser, ROLE_ADMIN, require_roles

router = APIRouter(prefix="/health", tags=["Health"])

VERSION = "1.0.0"


def get_db_health(db: Session) -> dict:
    """Check database connectivity and latency"""
    try:
        start = time.time()
        db.execute(text("SELECT 1"))
        latency_ms = (time.time() - start) * 1000
        return {
            "status": "up",
            "latency_ms": round(latency_ms, 2),
            "type": db.bind.dialect.name
        }
    except SQLAlchemyError as e:
        return {
            "status": "down",
            "error": str(e)[:100]
        }


def get_payments_health() -> dict:
    """Configuration check only; no call is made to Stripe"""
    if not settings.stripe_secret_key:
        return {"status": "not_configured"}
    return {
        "status": "configured",
        "webhook_secret": bool(settings.stripe_webhook_secret),
        "booking_fee_cents": settings.stripe_booking_fee_cents,
    }


@router.get("/live")
def liveness_check():
    """Liveness probe - is the process running?"""
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/ready")
def readiness_check(db: Session = Depends(get_db)):
    """Readiness probe - can the service reach its database?"""
    db_health = get_db_health(db)

    if db_health["status"] == "up":
        return {
            "status": "ready",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={
            "status": "not_ready",
            "reason": "database_unavailable",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    )


@router.get("/detailed")
def detailed_health_check(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles(ROLE_ADMIN))
):
    db_health = get_db_health(db)
    payments = get_payments_health()

    if db_health["status"] == "down":
        overall_status = "unhealthy"
    elif payments["status"] == "not_configured":
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return {
        "status": overall_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
        "environment": settings.environment,
        "checks": {
            "database": db_health,
            "payments": payments,
        },
        "config": {
            "rate_limit_enabled": settings.rate_limit_enabled,
            "rate_limit_storage": "redis" if settings.redis_url else "memory",
        }
    }
