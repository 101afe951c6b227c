# Overview: Flask API routes for dashboard and reports.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ValidationError
from ..services import reporting_service
from ..validation import parse_date_arg


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
def dashboard_route():
    return jsonify(reporting_service.dashboard()), 200


@reports_bp.get("/sales")
@require_auth
def sales_report_route():
    start = parse_date_arg(request.args.get("start"), "start")
    end = parse_date_arg(request.args.get("end"), "end")
    if start is None or end is None:
        raise ValidationError([{"field": "start", "message": "start and end are required"}])

    report = reporting_service.sales_report(
        start=start,
        end=end,
        group_by=request.args.get("group_by", "day"),
    )
    return jsonify(report), 200


@reports_bp.get("/stock")
@require_auth
def stock_report_route():
    return jsonify(reporting_service.stock_report()), 200


@reports_bp.get("/order-suggestion")
@require_auth
@require_role("MANAGER")
def order_suggestion_route():
    days = request.args.get("days", reporting_service.DEFAULT_SUGGESTION_DAYS, type=int)
    if days is None:
        raise ValidationError([{"field": "days", "message": "days must be an integer"}])
    return jsonify(reporting_service.order_suggestion(days)), 200


@reports_bp.get("/abc-curve")
@require_auth
@require_role("MANAGER")
def abc_curve_route():
    report = reporting_service.abc_curve(
        start=parse_date_arg(request.args.get("start"), "start"),
        end=parse_date_arg(request.args.get("end"), "end"),
    )
    return jsonify(report), 200
