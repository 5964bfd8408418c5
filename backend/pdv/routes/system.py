# backend/pdv/routes/system.py
"""
System health and version endpoints.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Store, PaymentMethod
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and that reference data is seeded.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        store_count = db.session.query(Store).count()
        payment_method_count = db.session.query(PaymentMethod).filter_by(is_active=True).count()

        elapsed_ms = (time.time() - start_time) * 1000

        status = "healthy" if payment_method_count else "degraded"
        return {
            "status": status,
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "stores": store_count,
                "active_payment_methods": payment_method_count,
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


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (no payment methods seeded yet)
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    return {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, http_status


@system_bp.get("/version")
def version():
    import sys

    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
