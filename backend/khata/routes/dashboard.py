# Overview: Flask API route for dashboard aggregates.

from flask import Blueprint, current_app

from ..extensions import db
from ..services.reporting_service import get_dashboard_summary
from ..time_utils import reporting_zone

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/summary")
def summary_route():
    """Low-stock count, total receivables and sales for today and this month."""
    tz = reporting_zone(current_app.config["REPORTING_TIMEZONE"])
    return get_dashboard_summary(db.session, tz=tz)
