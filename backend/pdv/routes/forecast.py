# Overview: Flask API routes for demand forecast, stockout risk and seasonality factors.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..services import forecast_service
from ..validation import require_fields


forecast_bp = Blueprint("forecast", __name__, url_prefix="/api/forecast")


@forecast_bp.get("/products/<int:product_id>")
@require_auth
def product_forecast_route(product_id: int):
    report = forecast_service.product_forecast_report(
        product_id,
        days=request.args.get("days", forecast_service.DEFAULT_FORECAST_DAYS, type=int),
        history_days=request.args.get("history_days", forecast_service.DEFAULT_HISTORY_DAYS, type=int),
    )
    return jsonify(report), 200


@forecast_bp.get("/general")
@require_auth
def general_forecast_route():
    report = forecast_service.general_forecast(
        days=request.args.get("days", forecast_service.DEFAULT_FORECAST_DAYS, type=int),
        category=request.args.get("category"),
        limit=request.args.get("limit", forecast_service.DEFAULT_GENERAL_LIMIT, type=int),
    )
    return jsonify(report), 200


@forecast_bp.get("/stockout-risk")
@require_auth
def stockout_risk_route():
    return jsonify(forecast_service.stockout_report()), 200


@forecast_bp.get("/dashboard")
@require_auth
def forecast_dashboard_route():
    return jsonify(forecast_service.forecast_dashboard()), 200


@forecast_bp.get("/seasonality")
@require_auth
def list_seasonality_route():
    return jsonify(forecast_service.list_seasonality()), 200


@forecast_bp.put("/seasonality")
@require_auth
@require_role("MANAGER")
def set_seasonality_route():
    data = require_fields(request.get_json(silent=True), {"factors": list})
    return jsonify(forecast_service.set_seasonality(data["factors"])), 200
