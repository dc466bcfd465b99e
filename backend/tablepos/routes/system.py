# Overview: Flask API route for system health; reports database and worker state.

"""
System health endpoint.

Reports database connectivity and background worker state for load
balancers and deployment debugging.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..components import get_components
from ..extensions import db

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
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    components = get_components()
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "checks": {
            "database": database,
            "workers": {
                "dispatcher": components.dispatcher.running,
                "token_sweeper": components.token_sweeper.running,
            },
        },
    }), (200 if healthy else 503)
