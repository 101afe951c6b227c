# Overview: Flask API routes for card / PIX transactions; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import payment_service
from ..validation import require_fields


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("")
@require_auth
def start_payment_route():
    data = require_fields(request.get_json(silent=True), {
        "gateway": str, "kind": str, "amount_cents": int, "installments?": int,
    })
    txn = payment_service.start_payment(
        gateway=data["gateway"],
        kind=data["kind"],
        amount_cents=data["amount_cents"],
        installments=data.get("installments", 1),
        employee_id=g.current_user.id,
    )
    return jsonify({"transaction": txn.to_dict()}), 201


@payments_bp.get("")
@require_auth
def list_payments_route():
    txns = payment_service.list_payments(
        status=request.args.get("status"),
        gateway=request.args.get("gateway"),
        limit=request.args.get("limit", type=int),
    )
    return jsonify({"transactions": [t.to_dict() for t in txns]}), 200


@payments_bp.get("/<string:transaction_id>")
@require_auth
def payment_status_route(transaction_id: str):
    return jsonify({"transaction": payment_service.get_payment(transaction_id).to_dict()}), 200


@payments_bp.post("/<string:transaction_id>/process")
@require_auth
def process_payment_route(transaction_id: str):
    txn = payment_service.process_payment(transaction_id)
    return jsonify({"transaction": txn.to_dict()}), 200


@payments_bp.post("/<string:transaction_id>/simulate")
@require_auth
def simulate_payment_route(transaction_id: str):
    """Body: {result: APPROVED|DECLINED, card_brand?, decline_reason?}"""
    data = require_fields(request.get_json(silent=True), {
        "result": str, "card_brand?": str, "decline_reason?": str,
    })
    txn = payment_service.simulate_result(transaction_id, **data)
    return jsonify({"transaction": txn.to_dict()}), 200


@payments_bp.post("/<string:transaction_id>/cancel")
@require_auth
def cancel_payment_route(transaction_id: str):
    txn = payment_service.cancel_payment(transaction_id)
    return jsonify({"transaction": txn.to_dict()}), 200


@payments_bp.post("/<string:transaction_id>/link-sale")
@require_auth
def link_sale_route(transaction_id: str):
    data = require_fields(request.get_json(silent=True), {"sale_id": int})
    txn = payment_service.link_to_sale(transaction_id, data["sale_id"])
    return jsonify({"transaction": txn.to_dict()}), 200
