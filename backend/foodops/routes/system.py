# backend/foodops/routes/system.py
"""
System health endpoint.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database = check_database_health()
    body = {
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "payment_gateway": {
                "configured": bool(current_app.config.get("MIDTRANS_SERVER_KEY")),
            },
        },
    }
    return jsonify(body), (200 if database["status"] == "healthy" else 503)
