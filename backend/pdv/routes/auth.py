# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- POST /api/auth/login   login + password -> bearer token
- POST /api/auth/logout  revokes the presented token
- GET  /api/auth/me      the authenticated employee
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import auth_service, session_service
from ..validation import require_fields


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate an employee and create a session token.

    The token must be sent as "Authorization: Bearer <token>" on every
    protected route. Wrong login, wrong password and inactive employee all
    answer the same 401.
    """
    data = require_fields(request.get_json(silent=True), {"login": str, "password": str})

    employee = auth_service.authenticate(data["login"], data["password"])
    session, token = session_service.create_session(
        employee_id=employee.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )

    return jsonify({
        "token": token,
        "employee": employee.to_dict(),
        "expires_at": session.to_dict()["expires_at"],
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.raw_token, reason="Logout")
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"employee": g.current_user.to_dict()}), 200
