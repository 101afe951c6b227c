# Overview: Flask API routes for tabs (comandas); parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import tab_service
from ..validation import require_fields


tabs_bp = Blueprint("tabs", __name__, url_prefix="/api/tabs")


@tabs_bp.get("")
@require_auth
def list_open_tabs_route():
    tabs = tab_service.list_open_tabs()
    return jsonify({"tabs": [t.to_dict() for t in tabs]}), 200


@tabs_bp.post("")
@require_auth
def create_tab_route():
    data = require_fields(request.get_json(silent=True), {"label?": str, "customer_id?": int})
    tab = tab_service.create_tab(
        employee=g.current_user,
        label=data.get("label"),
        customer_id=data.get("customer_id"),
    )
    return jsonify({"tab": tab.to_dict()}), 201


@tabs_bp.get("/<int:tab_id>")
@require_auth
def get_tab_route(tab_id: int):
    return jsonify({"tab": tab_service.get_tab(tab_id).to_dict()}), 200


@tabs_bp.post("/<int:tab_id>/lines")
@require_auth
def add_line_route(tab_id: int):
    data = require_fields(request.get_json(silent=True), {"product_id": int, "quantity": int, "note?": str})
    tab = tab_service.add_line(tab_id, **data)
    return jsonify({"tab": tab.to_dict()}), 201


@tabs_bp.delete("/<int:tab_id>/lines/<int:line_id>")
@require_auth
def remove_line_route(tab_id: int, line_id: int):
    tab = tab_service.remove_line(tab_id, line_id)
    return jsonify({"tab": tab.to_dict()}), 200


@tabs_bp.put("/<int:tab_id>/discount")
@require_auth
def set_discount_route(tab_id: int):
    data = require_fields(request.get_json(silent=True), {"discount_cents": int})
    tab = tab_service.set_discount(tab_id, data["discount_cents"])
    return jsonify({"tab": tab.to_dict()}), 200


@tabs_bp.post("/<int:tab_id>/close")
@require_auth
def close_tab_route(tab_id: int):
    data = require_fields(request.get_json(silent=True), {"payment_method": str})
    sale = tab_service.close_tab(tab_id, employee=g.current_user, payment_method=data["payment_method"])
    return jsonify({"sale": sale.to_dict(), "tab": tab_service.get_tab(tab_id).to_dict()}), 200


@tabs_bp.post("/<int:tab_id>/cancel")
@require_auth
def cancel_tab_route(tab_id: int):
    tab = tab_service.cancel_tab(tab_id)
    return jsonify({"tab": tab.to_dict()}), 200
