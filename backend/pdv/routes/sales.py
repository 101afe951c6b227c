# Overview: Flask API routes for sales; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import sales_service
from ..services.pagination import page_args
from ..validation import parse_date_arg, require_fields


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Create a completed sale.

    Body: {items: [{product_id, quantity}], payment_method, discount_cents?, customer_id?}
    """
    data = require_fields(request.get_json(silent=True), {
        "items": list, "payment_method": str, "discount_cents?": int, "customer_id?": int,
    })
    sale = sales_service.create_sale(
        employee=g.current_user,
        items=data["items"],
        payment_method=data["payment_method"],
        discount_cents=data.get("discount_cents", 0),
        customer_id=data.get("customer_id"),
    )
    return jsonify({"sale": sale.to_dict()}), 201


@sales_bp.get("")
@require_auth
def list_sales_route():
    page, per_page = page_args(request.args)
    result = sales_service.list_sales(
        start=parse_date_arg(request.args.get("start"), "start"),
        end=parse_date_arg(request.args.get("end"), "end"),
        status=request.args.get("status"),
        employee_id=request.args.get("employee_id", type=int),
        customer_id=request.args.get("customer_id", type=int),
        page=page,
        per_page=per_page,
    )
    return jsonify(result), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    return jsonify({"sale": sales_service.get_sale(sale_id).to_dict()}), 200


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
@require_role("MANAGER")
def cancel_sale_route(sale_id: int):
    """Body: {reason?, restore_stock?}. Stock stays out unless restore_stock is true."""
    data = require_fields(request.get_json(silent=True), {"reason?": str, "restore_stock?": bool})
    sale = sales_service.cancel_sale(
        sale_id=sale_id,
        employee=g.current_user,
        reason=data.get("reason"),
        restore_stock=data.get("restore_stock", False),
    )
    return jsonify({"sale": sale.to_dict()}), 200
