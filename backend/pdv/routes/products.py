# Overview: Flask API routes for product catalog operations.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ValidationError
from ..services import products_service
from ..services.pagination import page_args


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    page, per_page = page_args(request.args)
    result = products_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        brand=request.args.get("brand"),
        status=request.args.get("status"),
        page=page,
        per_page=per_page,
    )
    return jsonify(result), 200


@products_bp.get("/categories")
@require_auth
def list_categories_route():
    return jsonify({"categories": products_service.list_categories()}), 200


@products_bp.get("/low-stock")
@require_auth
def low_stock_route():
    products = products_service.list_low_stock(limit=request.args.get("limit", type=int))
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.get("/expiring")
@require_auth
def expiring_route():
    days = request.args.get("days", 30, type=int)
    if days is None or days < 0:
        raise ValidationError([{"field": "days", "message": "days must be an integer >= 0"}])
    products = products_service.list_expiring(days)
    return jsonify({"days": days, "products": [p.to_dict() for p in products]}), 200


@products_bp.get("/expired")
@require_auth
def expired_route():
    products = products_service.list_expired()
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.get("/code/<string:code>")
@require_auth
def find_by_code_route(code: str):
    product = products_service.find_by_code(code)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    return jsonify({"product": products_service.get_product_detail(product_id)}), 200


@products_bp.post("")
@require_auth
@require_role("MANAGER")
def create_product_route():
    product = products_service.create_product(request.get_json(silent=True), employee_id=g.current_user.id)
    return jsonify({"product": product.to_dict()}), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_role("MANAGER")
def update_product_route(product_id: int):
    product = products_service.update_product(product_id, request.get_json(silent=True))
    return jsonify({"product": product.to_dict()}), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role("MANAGER")
def deactivate_product_route(product_id: int):
    product = products_service.deactivate_product(product_id)
    return jsonify({"product": product.to_dict()}), 200
