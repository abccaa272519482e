# Overview: Flask API routes for staff accounts and staff payments.

"""
Staff Routes

- Account management (create, role, profile, transfer, archive, password
  reset) requires MANAGE_STAFF.
- Salaries, bonuses, advances and deductions require PAY_STAFF.

Temporary passwords are returned exactly once, in the create and reset
responses.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..services import staff_service
from ..services.staff_service import StaffError, StaffNotFoundError
from ..validation import ValidationError, coerce_int


staff_bp = Blueprint("staff", __name__, url_prefix="/api/staff")


def _optional_int(name: str, value):
    if value is None:
        return None
    return coerce_int(name, value)


@staff_bp.get("")
@require_auth
@require_permission("MANAGE_STAFF")
def list_staff_route():
    include_deleted = request.args.get("include_deleted", "false").lower() == "true"
    branch_id = request.args.get("branch_id", type=int)
    users = staff_service.list_staff(g.current_user, include_deleted=include_deleted, branch_id=branch_id)
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})


@staff_bp.get("/<int:user_id>")
@require_auth
@require_permission("MANAGE_STAFF")
def get_staff_route(user_id: int):
    try:
        user = staff_service.get_staff(user_id, g.current_user)
        return jsonify(user.to_dict())
    except StaffNotFoundError:
        return jsonify({"error": "User not found"}), 404


@staff_bp.post("")
@require_auth
@require_permission("MANAGE_STAFF")
def create_staff_route():
    """
    Request body:
    {
        "role": "employee",         // required
        "full_name": "...",          // required
        "phone_number": "...",
        "salary_cents": 150000,
        "branch_id": 1               // null = head office
    }

    Returns:
        {"user": User, "temporary_password": str}
    """
    data = request.get_json(silent=True) or {}
    try:
        user, temporary_password = staff_service.create_user(
            role=data.get("role") or "employee",
            full_name=data.get("full_name"),
            phone_number=data.get("phone_number"),
            salary_cents=coerce_int("salary_cents", data.get("salary_cents", 0)),
            branch_id=_optional_int("branch_id", data.get("branch_id")),
            actor=g.current_user,
        )
        return jsonify({"user": user.to_dict(), "temporary_password": temporary_password}), 201
    except (ValidationError, StaffError) as e:
        return jsonify({"error": str(e)}), 400


@staff_bp.patch("/<int:user_id>")
@require_auth
@require_permission("MANAGE_STAFF")
def update_staff_route(user_id: int):
    """Editable: full_name, phone_number, salary_cents."""
    data = request.get_json(silent=True) or {}
    try:
        if "salary_cents" in data:
            data["salary_cents"] = coerce_int("salary_cents", data["salary_cents"])
        user = staff_service.update_profile(user_id, data, actor=g.current_user)
        return jsonify(user.to_dict())
    except StaffNotFoundError:
        return jsonify({"error": "User not found"}), 404
    except (ValidationError, StaffError) as e:
        return jsonify({"error": str(e)}), 400


@staff_bp.post("/<int:user_id>/role")
@require_auth
@require_permission("MANAGE_STAFF")
def update_role_route(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        user = staff_service.update_role(user_id, data.get("role"), actor=g.current_user)
        return jsonify(user.to_dict())
    except StaffNotFoundError:
        return jsonify({"error": "User not found"}), 404
    except StaffError as e:
        return jsonify({"error": str(e)}), 400


@staff_bp.post("/<int:user_id>/transfer")
@require_auth
@require_permission("MANAGE_STAFF")
def transfer_route(user_id: int):
    """Body: {"branch_id": int | null}"""
    data = request.get_json(silent=True) or {}
    try:
        user = staff_service.transfer(
            user_id,
            _optional_int("branch_id", data.get("branch_id")),
            actor=g.current_user,
        )
        return jsonify(user.to_dict())
    except StaffNotFoundError:
        return jsonify({"error": "User not found"}), 404
    except (ValidationError, StaffError) as e:
        return jsonify({"error": str(e)}), 400


@staff_bp.post("/<int:user_id>/reset-password")
@require_auth
@require_permission("MANAGE_STAFF")
def reset_password_route(user_id: int):
    try:
        user, temporary_password = staff_service.reset_password(user_id, actor=g.current_user)
        return jsonify({"user": user.to_dict(), "temporary_password": temporary_password})
    except StaffNotFoundError:
        return jsonify({"error": "User not found"}), 404
    except StaffError as e:
        return jsonify({"error": str(e)}), 400


@staff_bp.delete("/<int:user_id>")
@require_auth
@require_permission("MANAGE_STAFF")
def delete_staff_route(user_id: int):
    """Archive a staff account. Body: {"reason": "..."}"""
    data = request.get_json(silent=True) or {}
    try:
        user = staff_service.delete_user(user_id, data.get("reason"), actor=g.current_user)
        return jsonify(user.to_dict())
    except StaffNotFoundError:
        return jsonify({"error": "User not found"}), 404
    except (ValidationError, StaffError) as e:
        return jsonify({"error": str(e)}), 400


# =============================================================================
# STAFF PAYMENTS
# =============================================================================

@staff_bp.get("/payments")
@require_auth
@require_permission("PAY_STAFF")
def list_staff_payments_route():
    staff_id = request.args.get("staff_id", type=int)
    payments = staff_service.list_staff_payments(g.current_user, staff_id=staff_id)
    return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)})


@staff_bp.post("/<int:user_id>/payments")
@require_auth
@require_permission("PAY_STAFF")
def record_staff_payment_route(user_id: int):
    """
    Request body:
    {
        "amount_cents": 50000,          // required, > 0
        "payment_type": "salary",       // salary | bonus | advance | deduction
        "notes": "..."
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        payment = staff_service.record_staff_payment(
            staff_id=user_id,
            amount_cents=coerce_int("amount_cents", data.get("amount_cents")),
            payment_type=data.get("payment_type"),
            notes=data.get("notes"),
            actor=g.current_user,
        )
        return jsonify(payment.to_dict()), 201
    except StaffNotFoundError:
        return jsonify({"error": "User not found"}), 404
    except (ValidationError, StaffError) as e:
        return jsonify({"error": str(e)}), 400
