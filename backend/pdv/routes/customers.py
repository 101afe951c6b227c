# Overview: Flask API routes for customers and loyalty points.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import customer_service
from ..services.pagination import page_args
from ..validation import require_fields


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    page, per_page = page_args(request.args)
    result = customer_service.list_customers(
        search=request.args.get("search"),
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        page=page,
        per_page=per_page,
    )
    return jsonify(result), 200


@customers_bp.get("/cpf/<string:cpf>")
@require_auth
def find_by_cpf_route(cpf: str):
    return jsonify({"customer": customer_service.find_by_cpf(cpf).to_dict()}), 200


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    return jsonify({"customer": customer_service.get_customer_detail(customer_id)}), 200


@customers_bp.post("")
@require_auth
def create_customer_route():
    customer = customer_service.create_customer(request.get_json(silent=True))
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    customer = customer_service.update_customer(customer_id, request.get_json(silent=True))
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_role("MANAGER")
def deactivate_customer_route(customer_id: int):
    customer = customer_service.deactivate_customer(customer_id)
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.get("/<int:customer_id>/points")
@require_auth
def loyalty_history_route(customer_id: int):
    entries = customer_service.list_loyalty_transactions(customer_id)
    return jsonify({"transactions": [e.to_dict() for e in entries]}), 200


@customers_bp.post("/<int:customer_id>/points")
@require_auth
@require_role("MANAGER")
def adjust_points_route(customer_id: int):
    data = require_fields(request.get_json(silent=True), {"points": int, "reason": str})
    result = customer_service.adjust_points(
        customer_id,
        points=data["points"],
        reason=data["reason"],
        employee_id=g.current_user.id,
    )
    return jsonify(result), 200
