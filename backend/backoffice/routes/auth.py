# Overview: Flask API routes for login, logout and the current user.

# backend/backoffice/routes/auth.py
"""
Authentication API routes

Accounts are created by managers (see routes/staff.py); there is no
self-registration. Login returns a bearer token that must be sent as
`Authorization: Bearer <token>` on every other route.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..services.auth_service import InvalidCredentialsError
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info, permissions and session token on success.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not all([username, password]):
        return jsonify({"error": "username and password required"}), 400

    try:
        user = auth_service.authenticate(username, password)
        session, token = session_service.create_session(user.id)
    except InvalidCredentialsError:
        db.session.rollback()
        return jsonify({"error": "Invalid credentials"}), 401
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_user_permissions(user)),
        "token": token,
        "expires_at": session.expires_at.isoformat() + "Z",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_user_permissions(user)),
    }), 200
