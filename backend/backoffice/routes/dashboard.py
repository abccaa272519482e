from flask import Blueprint, jsonify, request, g

from ..decorators import require_auth, require_permission
from ..services import dashboard_service
from ..services.dashboard_service import DashboardQuery
from backoffice.time_utils import parse_iso_date


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
@require_permission("VIEW_DASHBOARD")
def dashboard_route():
    try:
        today = parse_iso_date(request.args.get("today"))
    except ValueError:
        return jsonify({"error": "today must be an ISO-8601 date"}), 400

    stats = dashboard_service.build_dashboard(
        g.current_user,
        DashboardQuery(today=today, branch_id=request.args.get("branch_id", type=int)),
    )
    return jsonify(stats), 200
