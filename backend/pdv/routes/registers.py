# Overview: Flask API routes for cash sessions; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..permissions import can
from ..services import register_service
from ..services.pagination import page_args
from ..validation import require_fields


registers_bp = Blueprint("registers", __name__, url_prefix="/api/registers")


@registers_bp.post("/open")
@require_auth
def open_session_route():
    data = require_fields(request.get_json(silent=True), {"opening_cents": int, "note?": str})
    session = register_service.open_session(
        employee=g.current_user,
        opening_cents=data["opening_cents"],
        note=data.get("note"),
    )
    return jsonify({"session": session.to_dict()}), 201


@registers_bp.post("/close")
@require_auth
def close_session_route():
    data = require_fields(request.get_json(silent=True), {"closing_cents": int, "note?": str})
    session, summary = register_service.close_session(
        employee=g.current_user,
        closing_cents=data["closing_cents"],
        note=data.get("note"),
    )
    return jsonify({"session": session.to_dict(), "summary": summary}), 200


@registers_bp.get("/current")
@require_auth
def current_session_route():
    return jsonify(register_service.current_session(g.current_user)), 200


@registers_bp.get("/history")
@require_auth
def history_route():
    """MANAGER+ may filter by employee_id; a SELLER always sees their own sessions."""
    if can(g.current_user.role, "MANAGER"):
        employee_id = request.args.get("employee_id", type=int)
    else:
        employee_id = g.current_user.id

    page, per_page = page_args(request.args)
    result = register_service.session_history(employee_id=employee_id, page=page, per_page=per_page)
    return jsonify(result), 200
