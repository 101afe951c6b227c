# Overview: Service-layer operations for employees and credentials; encapsulates business logic and database work.

"""
Employee Authentication Service

Every action must be attributable, so every operator has an Employee row
with a bcrypt password hash.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 4 characters (short PINs are common on shop counters)
- Session tokens managed separately (see session_service.py)
- Deactivation and password changes revoke open sessions
"""

import bcrypt
from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ..models import Employee, Sale
from ..permissions import ROLES
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, validate_payload
from . import session_service


MIN_PASSWORD_LENGTH = 4
MIN_LOGIN_LENGTH = 3

EMPLOYEE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "job_title", "commission_bps", "login", "role"},
    required_on_create={"name", "login"},
    choices={"role": set(ROLES)},
)

EMPLOYEE_ADMIN_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "job_title", "commission_bps", "login", "role", "status"},
    choices={"role": set(ROLES), "status": {"ACTIVE", "INACTIVE"}},
)

# Anyone may rename themselves; nothing else
EMPLOYEE_SELF_UPDATE_POLICY = ModelValidationPolicy(writable_fields={"name"})


def validate_password(password, field: str = "password") -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError([{
            "field": field,
            "message": f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
        }])


def hash_password(password: str) -> str:
    """Hash password using bcrypt (cost factor BCRYPT_ROUNDS, 12 by default). Validates length first."""
    validate_password(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _check_rules(patch: dict) -> None:
    errors = []
    login = patch.get("login")
    if login is not None and len(login) < MIN_LOGIN_LENGTH:
        errors.append({"field": "login", "message": f"login must have at least {MIN_LOGIN_LENGTH} characters"})
    bps = patch.get("commission_bps")
    if bps is not None and not 0 <= bps <= 10000:
        errors.append({"field": "commission_bps", "message": "commission_bps must be between 0 and 10000"})
    if errors:
        raise ValidationError(errors)


def _ensure_login_free(login: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Employee.id).filter(Employee.login == login)
    if exclude_id is not None:
        query = query.filter(Employee.id != exclude_id)
    if query.first():
        raise ConflictError("Login already registered", details={"field": "login"})


def get_employee(employee_id: int) -> Employee:
    employee = db.session.query(Employee).filter_by(id=employee_id).first()
    if not employee:
        raise NotFoundError("Employee not found")
    return employee


def create_employee(payload: dict) -> Employee:
    """
    Create a new employee with a bcrypt-hashed password.

    Raises:
        ValidationError: bad fields or short password
        ConflictError: login already taken
    """
    payload = dict(payload or {})
    password = payload.pop("password", None)

    patch = validate_payload(model=Employee, payload=payload, policy=EMPLOYEE_CREATE_POLICY, partial=False)
    _check_rules(patch)
    validate_password(password)
    _ensure_login_free(patch["login"])

    employee = Employee(
        **patch,
        password_hash=hash_password(password),
        status="ACTIVE",
    )
    db.session.add(employee)
    db.session.commit()
    return employee


def update_employee(actor: Employee, employee_id: int, payload: dict) -> Employee:
    """
    Update an employee.

    ADMIN may change any writable field of anyone; everyone else may only
    change their own name. Setting status INACTIVE revokes open sessions.
    """
    employee = get_employee(employee_id)

    if actor.role == "ADMIN":
        policy = EMPLOYEE_ADMIN_UPDATE_POLICY
    elif actor.id == employee.id:
        policy = EMPLOYEE_SELF_UPDATE_POLICY
    else:
        raise PermissionDeniedError("Only ADMIN can update other employees")

    patch = validate_payload(model=Employee, payload=payload, policy=policy, partial=True)
    _check_rules(patch)

    if "login" in patch and patch["login"] != employee.login:
        _ensure_login_free(patch["login"], exclude_id=employee.id)

    if patch.get("status") == "INACTIVE" and employee.id == actor.id:
        raise ConflictError("You cannot deactivate your own account")

    for key, value in patch.items():
        setattr(employee, key, value)

    if patch.get("status") == "INACTIVE":
        session_service.revoke_all_employee_sessions(employee.id, "Employee deactivated", commit=False)

    db.session.commit()
    return employee


def deactivate_employee(actor: Employee, employee_id: int) -> Employee:
    """Soft delete. An admin cannot deactivate their own account."""
    if actor.id == employee_id:
        raise ConflictError("You cannot deactivate your own account")

    employee = get_employee(employee_id)
    employee.status = "INACTIVE"
    session_service.revoke_all_employee_sessions(employee.id, "Employee deactivated", commit=False)
    db.session.commit()
    return employee


def change_password(
    actor: Employee,
    employee_id: int,
    new_password: str,
    current_password: str | None = None,
) -> None:
    """
    Change a password.

    Employees changing their own password must present the current one.
    An ADMIN resetting somebody else's password does not need it.
    All sessions of the target employee are revoked.
    """
    employee = get_employee(employee_id)

    if actor.id == employee.id:
        if not current_password or not verify_password(current_password, employee.password_hash):
            raise ValidationError([{"field": "current_password", "message": "Current password is incorrect"}])
    elif actor.role != "ADMIN":
        raise PermissionDeniedError("Only ADMIN can reset other employees' passwords")

    validate_password(new_password, field="new_password")
    employee.password_hash = hash_password(new_password)
    session_service.revoke_all_employee_sessions(employee.id, "Password changed", commit=False)
    db.session.commit()


def authenticate(login: str, password: str) -> Employee:
    """
    Check credentials and return the ACTIVE employee.

    Raises AuthenticationError with the same message whether the login or
    the password was wrong.
    """
    employee = db.session.query(Employee).filter(
        Employee.login == login,
        Employee.status == "ACTIVE",
    ).first()

    if not employee or not verify_password(password, employee.password_hash):
        raise AuthenticationError("Invalid credentials")

    employee.last_login_at = utcnow()
    db.session.commit()
    return employee


def list_employees(include_inactive: bool = True) -> list[Employee]:
    query = db.session.query(Employee)
    if not include_inactive:
        query = query.filter(Employee.status == "ACTIVE")
    return query.order_by(Employee.name.asc()).all()


def employee_sales_stats(employee_id: int) -> dict:
    """Count and total of COMPLETED sales made by the employee."""
    count, total = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_cents), 0),
    ).filter(
        Sale.employee_id == employee_id,
        Sale.status == "COMPLETED",
    ).one()
    return {"sale_count": int(count), "sales_total_cents": int(total)}
