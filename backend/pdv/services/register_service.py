# Overview: Service-layer operations for cash sessions; open, close and reconcile the drawer.

"""
Cash Session Reconciliation

WHY: Cashier accountability. Each employee opens a session with the cash
counted in the drawer, sells, then closes it with the counted amount.

RECONCILIATION (over COMPLETED sales by the employee since opened_at):
- total sales  = sum of sale totals (every payment method)
- cash total   = sum of totals paid in CASH
- expected     = opening + cash total
- discrepancy  = reported closing - expected (positive = surplus)

The same aggregation feeds the read-only "current session" view, so the
numbers are re-derivable at any time before closing.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import CashSession, Employee, Sale
from ..models.sales import PAYMENT_METHODS
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .pagination import paginate


def _check_amount(value, field: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValidationError([{"field": field, "message": f"{field} must be an integer >= 0 (cents)"}])


def _find_open_session(employee_id: int, *, lock: bool = False) -> CashSession | None:
    query = db.session.query(CashSession).filter_by(employee_id=employee_id, status="OPEN")
    if lock:
        query = lock_for_update(query)
    return query.first()


def _aggregate_sales(session: CashSession) -> dict:
    """Per payment method totals of COMPLETED sales in the session window."""
    rows = (
        db.session.query(
            Sale.payment_method,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_cents), 0),
        )
        .filter(
            Sale.employee_id == session.employee_id,
            Sale.status == "COMPLETED",
            Sale.created_at >= session.opened_at,
        )
        .group_by(Sale.payment_method)
        .all()
    )

    by_method = {method: 0 for method in PAYMENT_METHODS}
    sale_count = 0
    total_sales = 0
    for method, count, total in rows:
        by_method[method] = int(total)
        sale_count += int(count)
        total_sales += int(total)

    return {
        "sale_count": sale_count,
        "total_sales_cents": total_sales,
        "cash_total_cents": by_method["CASH"],
        "by_payment_method": by_method,
    }


def open_session(*, employee: Employee, opening_cents: int, note: str | None = None) -> CashSession:
    """
    Open a cash session.

    Raises ConflictError if the employee already has an OPEN session; the
    existing session is left untouched.
    """
    _check_amount(opening_cents, "opening_cents")

    def _op() -> CashSession:
        existing = _find_open_session(employee.id, lock=True)
        if existing:
            raise ConflictError(
                "There is already an open cash session for this employee",
                details={"session_id": existing.id},
            )

        session = CashSession(
            employee_id=employee.id,
            status="OPEN",
            opening_cents=opening_cents,
            opening_note=note,
            opened_at=utcnow(),
        )
        db.session.add(session)
        try:
            db.session.flush()
        except IntegrityError:
            # A concurrent open won the unique OPEN-per-employee index
            db.session.rollback()
            winner = _find_open_session(employee.id)
            raise ConflictError(
                "There is already an open cash session for this employee",
                details={"session_id": winner.id if winner else None},
            )
        db.session.commit()
        return session

    return run_with_retry(_op)


def close_session(*, employee: Employee, closing_cents: int, note: str | None = None) -> tuple[CashSession, dict]:
    """
    Close the employee's OPEN session and freeze the reconciliation.

    Returns (session, summary). Raises NotFoundError if nothing is open.
    """
    _check_amount(closing_cents, "closing_cents")

    def _op() -> tuple[CashSession, dict]:
        session = _find_open_session(employee.id, lock=True)
        if not session:
            raise NotFoundError("No open cash session for this employee")

        totals = _aggregate_sales(session)
        expected = session.opening_cents + totals["cash_total_cents"]
        discrepancy = closing_cents - expected

        session.closing_cents = closing_cents
        session.expected_cents = expected
        session.discrepancy_cents = discrepancy
        session.closing_note = note
        session.closed_at = utcnow()
        session.status = "CLOSED"
        db.session.commit()

        summary = {
            "opening_cents": session.opening_cents,
            "total_sales_cents": totals["total_sales_cents"],
            "cash_total_cents": totals["cash_total_cents"],
            "expected_cents": expected,
            "closing_cents": closing_cents,
            "discrepancy_cents": discrepancy,
            "sale_count": totals["sale_count"],
        }

        if discrepancy:
            current_app.logger.info(
                "Cash session %s closed by employee %s with discrepancy %s cents",
                session.id, employee.id, discrepancy,
            )
        else:
            current_app.logger.info("Cash session %s closed by employee %s", session.id, employee.id)

        return session, summary

    return run_with_retry(_op)


def current_session(employee: Employee) -> dict:
    """Read-only reconciliation of the OPEN session (no mutation)."""
    session = _find_open_session(employee.id)
    if not session:
        return {"open": False, "session": None, "summary": None}

    totals = _aggregate_sales(session)
    return {
        "open": True,
        "session": session.to_dict(),
        "summary": {
            "opening_cents": session.opening_cents,
            "total_sales_cents": totals["total_sales_cents"],
            "cash_total_cents": totals["cash_total_cents"],
            "expected_cents": session.opening_cents + totals["cash_total_cents"],
            "sale_count": totals["sale_count"],
            "by_payment_method": totals["by_payment_method"],
        },
    }


def session_history(
    *,
    employee_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Sessions newest first; employee_id restricts to one employee."""
    query = db.session.query(CashSession)
    if employee_id is not None:
        query = query.filter(CashSession.employee_id == employee_id)
    query = query.order_by(CashSession.opened_at.desc(), CashSession.id.desc())
    return paginate(query, page, per_page)
