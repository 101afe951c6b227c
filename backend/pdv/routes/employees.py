# Overview: Flask API routes for employee management.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import PermissionDeniedError
from ..permissions import can
from ..services import auth_service


employees_bp = Blueprint("employees", __name__, url_prefix="/api/employees")


@employees_bp.get("")
@require_auth
@require_role("MANAGER")
def list_employees_route():
    include_inactive = request.args.get("include_inactive", "true").lower() == "true"
    employees = auth_service.list_employees(include_inactive=include_inactive)
    return jsonify({"employees": [e.to_dict() for e in employees]}), 200


@employees_bp.get("/<int:employee_id>")
@require_auth
def get_employee_route(employee_id: int):
    """Self, or MANAGER+ for anyone. Includes COMPLETED sales statistics."""
    if g.current_user.id != employee_id and not can(g.current_user.role, "MANAGER"):
        raise PermissionDeniedError("Requires role MANAGER", details={"required_role": "MANAGER"})

    employee = auth_service.get_employee(employee_id)
    data = employee.to_dict()
    data["stats"] = auth_service.employee_sales_stats(employee.id)
    return jsonify({"employee": data}), 200


@employees_bp.post("")
@require_auth
@require_role("ADMIN")
def create_employee_route():
    employee = auth_service.create_employee(request.get_json(silent=True))
    return jsonify({"employee": employee.to_dict()}), 201


@employees_bp.put("/<int:employee_id>")
@require_auth
def update_employee_route(employee_id: int):
    employee = auth_service.update_employee(g.current_user, employee_id, request.get_json(silent=True))
    return jsonify({"employee": employee.to_dict()}), 200


@employees_bp.delete("/<int:employee_id>")
@require_auth
@require_role("ADMIN")
def deactivate_employee_route(employee_id: int):
    employee = auth_service.deactivate_employee(g.current_user, employee_id)
    return jsonify({"employee": employee.to_dict()}), 200


@employees_bp.post("/<int:employee_id>/password")
@require_auth
def change_password_route(employee_id: int):
    data = request.get_json(silent=True) or {}
    auth_service.change_password(
        g.current_user,
        employee_id,
        new_password=data.get("new_password"),
        current_password=data.get("current_password"),
    )
    return jsonify({"message": "Password changed"}), 200
