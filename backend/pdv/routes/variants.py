# Overview: Flask API routes for attribute types and product variant grids.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import inventory_service, variant_service
from ..validation import require_fields


variants_bp = Blueprint("variants", __name__, url_prefix="/api")


def _include_inactive() -> bool:
    return request.args.get("include_inactive", "").lower() in {"1", "true"}


@variants_bp.get("/attributes")
@require_auth
def list_attributes_route():
    types = variant_service.list_attribute_types(include_inactive=_include_inactive())
    return jsonify({"attributes": [t.to_dict() for t in types]}), 200


@variants_bp.get("/attributes/<int:type_id>")
@require_auth
def get_attribute_route(type_id: int):
    return jsonify({"attribute": variant_service.get_attribute_type(type_id).to_dict()}), 200


@variants_bp.post("/attributes")
@require_auth
@require_role("MANAGER")
def create_attribute_route():
    data = require_fields(request.get_json(silent=True), {
        "name": str, "description?": str, "options?": list,
    })
    attribute_type = variant_service.create_attribute_type(**data)
    return jsonify({"attribute": attribute_type.to_dict()}), 201


@variants_bp.put("/attributes/<int:type_id>")
@require_auth
@require_role("MANAGER")
def update_attribute_route(type_id: int):
    data = require_fields(request.get_json(silent=True), {
        "name?": str, "description?": str, "status?": str,
    })
    attribute_type = variant_service.update_attribute_type(type_id, **data)
    return jsonify({"attribute": attribute_type.to_dict()}), 200


@variants_bp.delete("/attributes/<int:type_id>")
@require_auth
@require_role("MANAGER")
def deactivate_attribute_route(type_id: int):
    attribute_type = variant_service.deactivate_attribute_type(type_id)
    return jsonify({"attribute": attribute_type.to_dict()}), 200


@variants_bp.post("/attributes/<int:type_id>/options")
@require_auth
@require_role("MANAGER")
def add_option_route(type_id: int):
    data = require_fields(request.get_json(silent=True), {"value": str})
    option = variant_service.add_option(type_id, value=data["value"])
    return jsonify({"option": option.to_dict()}), 201


@variants_bp.delete("/attributes/options/<int:option_id>")
@require_auth
@require_role("MANAGER")
def delete_option_route(option_id: int):
    variant_service.delete_option(option_id)
    return jsonify({"deleted": True}), 200


@variants_bp.get("/products/<int:product_id>/variants")
@require_auth
def list_variants_route(product_id: int):
    variants = variant_service.list_variants(product_id, include_inactive=_include_inactive())
    return jsonify({"variants": [v.to_dict() for v in variants]}), 200


@variants_bp.post("/products/<int:product_id>/variants/grid")
@require_auth
@require_role("MANAGER")
def generate_grid_route(product_id: int):
    data = require_fields(request.get_json(silent=True), {"option_ids": list})
    result = variant_service.generate_grid(product_id=product_id, option_ids=data["option_ids"])
    return jsonify(result), 201


@variants_bp.put("/variants/batch")
@require_auth
@require_role("MANAGER")
def batch_update_route():
    data = require_fields(request.get_json(silent=True), {"variants": list})
    variants = variant_service.batch_update(data["variants"], employee_id=g.current_user.id)
    return jsonify({"variants": [v.to_dict() for v in variants]}), 200


@variants_bp.put("/variants/<int:variant_id>")
@require_auth
@require_role("MANAGER")
def update_variant_route(variant_id: int):
    variant = variant_service.update_variant(
        variant_id, request.get_json(silent=True), employee_id=g.current_user.id,
    )
    return jsonify({"variant": variant.to_dict()}), 200


@variants_bp.delete("/variants/<int:variant_id>")
@require_auth
@require_role("MANAGER")
def deactivate_variant_route(variant_id: int):
    variant = variant_service.deactivate_variant(variant_id)
    return jsonify({"variant": variant.to_dict()}), 200


@variants_bp.get("/variants/<int:variant_id>/audit")
@require_auth
@require_role("MANAGER")
def audit_variant_route(variant_id: int):
    return jsonify(inventory_service.audit_variant_stock(variant_id)), 200
