# Overview: Flask API routes for branch management; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..services import branch_service
from ..services.branch_service import BranchError, BranchNotFoundError, BranchInUseError
from ..services.visibility import is_head_office


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


@branches_bp.get("")
@require_auth
def list_branches_route():
    """Branches visible to the current user (head office: all)."""
    include_deleted = request.args.get("include_deleted", "false").lower() == "true"
    branches = branch_service.list_branches(g.current_user, include_deleted=include_deleted)
    return jsonify({"items": [b.to_dict() for b in branches], "count": len(branches)})


@branches_bp.get("/<int:branch_id>")
@require_auth
def get_branch_route(branch_id: int):
    branch = branch_service.get_branch(branch_id)
    user = g.current_user
    if branch is None or (not is_head_office(user) and branch.id != user.branch_id):
        return jsonify({"error": "Branch not found"}), 404
    return jsonify(branch.to_dict())


@branches_bp.post("")
@require_auth
@require_permission("MANAGE_BRANCHES")
def create_branch_route():
    data = request.get_json(silent=True) or {}

    name = data.get("name")
    if not name:
        return jsonify({"error": "name is required"}), 400

    try:
        branch = branch_service.create_branch(
            name,
            location=data.get("location"),
            phone=data.get("phone"),
            tax_number=data.get("tax_number"),
            commercial_register=data.get("commercial_register"),
            actor=g.current_user,
        )
        return jsonify(branch.to_dict()), 201
    except BranchError as e:
        return jsonify({"error": str(e)}), 400


@branches_bp.patch("/<int:branch_id>")
@require_auth
@require_permission("MANAGE_BRANCHES")
def update_branch_route(branch_id: int):
    data = request.get_json(silent=True) or {}
    try:
        branch = branch_service.update_branch(branch_id, data, actor=g.current_user)
        return jsonify(branch.to_dict())
    except BranchNotFoundError:
        return jsonify({"error": "Branch not found"}), 404
    except BranchError as e:
        return jsonify({"error": str(e)}), 400


@branches_bp.post("/<int:branch_id>/status")
@require_auth
@require_permission("MANAGE_BRANCHES")
def set_branch_status_route(branch_id: int):
    """Body: {"status": "active" | "closed_temp"}"""
    data = request.get_json(silent=True) or {}
    try:
        branch = branch_service.set_branch_status(branch_id, data.get("status"), actor=g.current_user)
        return jsonify(branch.to_dict())
    except BranchNotFoundError:
        return jsonify({"error": "Branch not found"}), 404
    except BranchError as e:
        return jsonify({"error": str(e)}), 400


@branches_bp.delete("/<int:branch_id>")
@require_auth
@require_permission("MANAGE_BRANCHES")
def delete_branch_route(branch_id: int):
    """Archive a branch. Body: {"reason": "..."}"""
    data = request.get_json(silent=True) or {}
    try:
        branch = branch_service.delete_branch(branch_id, data.get("reason"), actor=g.current_user)
        return jsonify(branch.to_dict())
    except BranchNotFoundError:
        return jsonify({"error": "Branch not found"}), 404
    except BranchInUseError as e:
        return jsonify({"error": str(e)}), 409
    except BranchError as e:
        return jsonify({"error": str(e)}), 400
