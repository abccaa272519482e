from flask import Blueprint, jsonify, request, g

from ..decorators import require_auth, require_permission
from ..services import activity_service


activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")


@activity_bp.get("")
@require_auth
@require_permission("VIEW_ACTIVITY")
def recent_activity_route():
    items = activity_service.recent_activity(g.current_user)
    return jsonify({"items": items, "count": len(items)}), 200


@activity_bp.get("/audit")
@require_auth
@require_permission("VIEW_ACTIVITY")
def audit_trail_route():
    limit = request.args.get("limit", 100, type=int)
    limit = max(1, min(limit, 500))
    items = activity_service.audit_trail(g.current_user, limit)
    return jsonify({"items": items, "count": len(items), "limit": limit}), 200
