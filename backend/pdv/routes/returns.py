# Overview: Flask API routes for returns; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import return_service
from ..services.pagination import page_args
from ..validation import require_fields


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_auth
def create_return_route():
    """Body: {sale_id, reason, items: [{product_id, quantity}], note?, customer_id?}"""
    data = require_fields(request.get_json(silent=True), {
        "sale_id": int, "reason": str, "items": list, "note?": str, "customer_id?": int,
    })
    doc = return_service.create_return(employee=g.current_user, **data)
    return jsonify({"return": doc.to_dict()}), 201


@returns_bp.get("")
@require_auth
def list_returns_route():
    page, per_page = page_args(request.args)
    result = return_service.list_returns(status=request.args.get("status"), page=page, per_page=per_page)
    return jsonify(result), 200


@returns_bp.get("/<int:return_id>")
@require_auth
def get_return_route(return_id: int):
    return jsonify({"return": return_service.get_return(return_id).to_dict()}), 200


@returns_bp.post("/<int:return_id>/process")
@require_auth
def process_return_route(return_id: int):
    doc = return_service.process_return(return_id, employee=g.current_user)
    return jsonify({"return": doc.to_dict()}), 200
