# Overview: Health endpoint for deployment checks.

import time

from flask import Blueprint, current_app
from sqlalchemy import func, select

from ..extensions import db
from ..models import Customer, Product, Transaction

system_bp = Blueprint("system", __name__)

_COUNTED = {
    "products": Product,
    "customers": Customer,
    "transactions": Transaction,
}


def check_database_health() -> dict:
    """
    Round-trip a row count per table through the app's session.

    Returns status plus latency; table counts on success, a generic error
    otherwise (details go to the log, not the response).
    """
    started = time.perf_counter()
    try:
        counts = {
            name: db.session.execute(select(func.count(model.id))).scalar_one()
            for name, model in _COUNTED.items()
        }
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            "error": "Database error",
        }

    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "details": counts,
    }


@system_bp.get("/api/health")
def health():
    result = check_database_health()
    return result, 200 if result["status"] == "healthy" else 503
