# Overview: Service-layer operations for customers and loyalty points.

from __future__ import annotations

import re

from sqlalchemy import func, or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Customer, LoyaltyTransaction, Sale
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import lock_for_update, run_with_retry
from .pagination import paginate


CUSTOMER_FIELDS = {"name", "cpf", "phone", "email", "birth_date", "notes"}

CUSTOMER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=CUSTOMER_FIELDS,
    required_on_create={"name"},
)

CUSTOMER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=CUSTOMER_FIELDS | {"status"},
    choices={"status": {"ACTIVE", "INACTIVE"}},
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_cpf(value: str | None) -> str | None:
    """Keep digits only ("123.456.789-09" -> "12345678909")."""
    if value is None:
        return None
    digits = re.sub(r"\D", "", value)
    return digits or None


def _clean(patch: dict) -> dict:
    errors = []
    if "cpf" in patch:
        patch["cpf"] = normalize_cpf(patch["cpf"])
        if patch["cpf"] is not None and len(patch["cpf"]) != 11:
            errors.append({"field": "cpf", "message": "cpf must have 11 digits"})
    email = patch.get("email")
    if email and not _EMAIL_RE.match(email):
        errors.append({"field": "email", "message": "email is not valid"})
    if errors:
        raise ValidationError(errors)
    return patch


def _ensure_cpf_free(cpf: str | None, exclude_id: int | None = None) -> None:
    if not cpf:
        return
    query = db.session.query(Customer.id).filter(Customer.cpf == cpf)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise ConflictError("CPF already registered", details={"field": "cpf"})


def get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def list_customers(
    *,
    search: str | None = None,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """ACTIVE customers by name; search matches name, CPF, phone or email."""
    query = db.session.query(Customer)
    if not include_inactive:
        query = query.filter(Customer.status == "ACTIVE")
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(like),
            Customer.cpf.ilike(like),
            Customer.phone.ilike(like),
            Customer.email.ilike(like),
        ))
    query = query.order_by(Customer.name.asc(), Customer.id.asc())
    return paginate(query, page, per_page)


def customer_stats(customer_id: int) -> dict:
    count, total = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_cents), 0),
    ).filter(
        Sale.customer_id == customer_id,
        Sale.status == "COMPLETED",
    ).one()
    return {"purchase_count": int(count), "total_spent_cents": int(total)}


def get_customer_detail(customer_id: int) -> dict:
    """Customer plus the 10 latest sales and COMPLETED-sale totals."""
    customer = get_customer(customer_id)
    recent = (
        customer.sales
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(10)
        .all()
    )
    data = customer.to_dict()
    data["recent_sales"] = [s.to_dict(include_lines=False) for s in recent]
    data["stats"] = customer_stats(customer.id)
    return data


def find_by_cpf(cpf: str) -> Customer:
    customer = (
        db.session.query(Customer)
        .filter(Customer.cpf == normalize_cpf(cpf), Customer.status == "ACTIVE")
        .first()
    )
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def create_customer(payload: dict) -> Customer:
    patch = _clean(validate_payload(
        model=Customer, payload=payload, policy=CUSTOMER_CREATE_POLICY, partial=False,
    ))
    _ensure_cpf_free(patch.get("cpf"))

    customer = Customer(**patch, status="ACTIVE", loyalty_points=0)
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    customer = get_customer(customer_id)
    patch = _clean(validate_payload(
        model=Customer, payload=payload, policy=CUSTOMER_UPDATE_POLICY, partial=True,
    ))
    if patch.get("cpf") and patch["cpf"] != customer.cpf:
        _ensure_cpf_free(patch["cpf"], exclude_id=customer.id)

    for key, value in patch.items():
        setattr(customer, key, value)

    db.session.commit()
    return customer


def deactivate_customer(customer_id: int) -> Customer:
    customer = get_customer(customer_id)
    if customer.status != "INACTIVE":
        customer.status = "INACTIVE"
        db.session.commit()
    return customer


def record_loyalty(
    customer: Customer,
    *,
    points: int,
    reason: str,
    sale_id: int | None = None,
    employee_id: int | None = None,
) -> LoyaltyTransaction:
    """
    Move the balance and append a ledger entry, without committing.

    Raises ConflictError if the balance would go negative.
    """
    new_balance = customer.loyalty_points + points
    if new_balance < 0:
        raise ConflictError(
            "Insufficient loyalty points",
            details={"balance": customer.loyalty_points, "requested": points},
        )

    customer.loyalty_points = new_balance
    entry = LoyaltyTransaction(
        customer_id=customer.id,
        points=points,
        balance_after=new_balance,
        reason=reason,
        sale_id=sale_id,
        employee_id=employee_id,
    )
    db.session.add(entry)
    return entry


def adjust_points(customer_id: int, *, points: int, reason: str, employee_id: int | None) -> dict:
    """Manual credit / debit of loyalty points."""
    if not isinstance(points, int) or isinstance(points, bool) or points == 0:
        raise ValidationError([{"field": "points", "message": "points must be a non-zero integer"}])
    if not reason or not str(reason).strip():
        raise ValidationError([{"field": "reason", "message": "reason is required"}])

    def _op() -> dict:
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if not customer:
            raise NotFoundError("Customer not found")
        previous = customer.loyalty_points
        entry = record_loyalty(customer, points=points, reason=reason, employee_id=employee_id)
        db.session.commit()
        return {
            "customer": customer.to_dict(),
            "transaction": entry.to_dict(),
            "previous_points": previous,
            "current_points": customer.loyalty_points,
            "change": points,
        }

    return run_with_retry(_op)


def list_loyalty_transactions(customer_id: int) -> list[LoyaltyTransaction]:
    customer = get_customer(customer_id)
    return (
        customer.loyalty_transactions
        .order_by(LoyaltyTransaction.created_at.desc(), LoyaltyTransaction.id.desc())
        .all()
    )
