# backend/resale/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import User, SessionToken
from resale.time_utils import utcnow

system_bp = Blueprint("system", __name__)


API_VERSION = "1.0.0"


def check_database_health() -> dict:
    """Check database connectivity with a cheap count."""
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "active_sessions": active_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_gateway_health() -> dict:
    gateway = current_app.extensions.get("payment_gateway")
    if gateway is None:
        return {"status": "unhealthy", "error": "Payment gateway not configured"}
    return {
        "status": "healthy",
        "details": {
            "mode": gateway.mode,
            "currency": current_app.config.get("GATEWAY_CURRENCY"),
            "checkout_mode": current_app.config.get("CHECKOUT_PAYMENT_MODE"),
        }
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: All systems healthy
    - 503: One or more systems unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    gateway_health = check_gateway_health()

    unhealthy = any(check["status"] == "unhealthy" for check in (database_health, gateway_health))

    response = {
        "status": "unhealthy" if unhealthy else "healthy",
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "payment_gateway": gateway_health,
        }
    }

    return response, 503 if unhealthy else 200


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information. Never exposes secrets or paths."""
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": API_VERSION,
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
