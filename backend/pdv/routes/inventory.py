# Overview: Flask API routes for stock movements; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import inventory_service
from ..services.pagination import page_args
from ..validation import parse_date_arg, require_fields


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/entry")
@require_auth
def stock_entry_route():
    data = require_fields(request.get_json(silent=True), {
        "product_id": int, "quantity": int, "reason": str, "note?": str,
    })
    result = inventory_service.stock_entry(employee_id=g.current_user.id, **data)
    return jsonify({"movement": result}), 201


@inventory_bp.post("/exit")
@require_auth
def stock_exit_route():
    data = require_fields(request.get_json(silent=True), {
        "product_id": int, "quantity": int, "reason": str, "note?": str,
    })
    result = inventory_service.stock_exit(employee_id=g.current_user.id, **data)
    return jsonify({"movement": result}), 201


@inventory_bp.post("/adjust")
@require_auth
@require_role("MANAGER")
def stock_adjust_route():
    data = require_fields(request.get_json(silent=True), {
        "product_id": int, "new_stock": int, "reason": str, "note?": str,
    })
    result = inventory_service.stock_adjust(employee_id=g.current_user.id, **data)
    return jsonify({"movement": result}), 201


@inventory_bp.get("/movements")
@require_auth
def list_movements_route():
    page, per_page = page_args(request.args)
    result = inventory_service.list_movements(
        product_id=request.args.get("product_id", type=int),
        kind=request.args.get("kind"),
        start=parse_date_arg(request.args.get("start"), "start"),
        end=parse_date_arg(request.args.get("end"), "end"),
        page=page,
        per_page=per_page,
    )
    return jsonify(result), 200


@inventory_bp.get("/audit/<int:product_id>")
@require_auth
@require_role("MANAGER")
def audit_route(product_id: int):
    return jsonify(inventory_service.audit_product_stock(product_id)), 200
