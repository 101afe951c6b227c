# Overview: Flask API routes for the offline write queue, used by the replay agent.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..services import sync_service


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.get("/pending")
@require_auth
@require_role("MANAGER")
def pending_route():
    entries = sync_service.list_pending(limit=request.args.get("limit", type=int))
    return jsonify({"entries": [e.to_dict() for e in entries], "count": len(entries)}), 200


@sync_bp.post("/<int:entry_id>/ack")
@require_auth
@require_role("MANAGER")
def acknowledge_route(entry_id: int):
    entry = sync_service.acknowledge(entry_id)
    return jsonify({"entry": entry.to_dict()}), 200


@sync_bp.post("/<int:entry_id>/fail")
@require_auth
@require_role("MANAGER")
def failure_route(entry_id: int):
    data = request.get_json(silent=True) or {}
    entry = sync_service.record_failure(entry_id, data.get("error"))
    return jsonify({"entry": entry.to_dict()}), 200
