# Overview: Flask API route for the dashboard summary.

from flask import Blueprint

from ..decorators import require_auth
from ..responses import ok
from ..services import reporting_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
def dashboard_route():
    return ok(reporting_service.dashboard_summary())
