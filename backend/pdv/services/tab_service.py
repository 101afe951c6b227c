# Overview: Service-layer operations for tabs (comandas) and their conversion into sales.

"""
Tabs

A tab accumulates lines while the customer is still in the shop. Each line
snapshots the product price when it is added; tab totals are always
recomputed from the full line set, never incremented.

Closing a tab, in ONE transaction:
1. reject unless the tab is OPEN and every line is covered by stock
2. create a Sale with a fresh number, copying lines, subtotal, discount, total
3. decrement stock with one OUT movement per line (referencing sale and tab)
4. mark the tab CLOSED and link it to the sale
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Employee, Product, Tab, TabLine
from ..time_utils import utcnow
from .concurrency import lock_for_update, lock_products, run_with_retry
from .sales_service import (
    LineRequest,
    check_stock,
    get_customer_for_sale,
    record_sale,
    validate_payment_method,
)
from .sequence_service import next_sequence


def _positive_int(value, field: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError([{"field": field, "message": f"{field} must be a positive integer"}])
    return value


def _get_tab(tab_id: int, *, lock: bool = False) -> Tab:
    query = db.session.query(Tab).filter_by(id=tab_id)
    if lock:
        query = lock_for_update(query)
    tab = query.first()
    if not tab:
        raise NotFoundError("Tab not found")
    return tab


def _require_open(tab: Tab) -> None:
    if tab.status != "OPEN":
        raise ConflictError(f"Tab #{tab.number} is {tab.status}", details={"status": tab.status})


def recompute_totals(tab: Tab) -> None:
    """subtotal = sum of line totals; discount is capped at the subtotal."""
    subtotal = sum(line.line_total_cents for line in tab.lines)
    if tab.discount_cents > subtotal:
        tab.discount_cents = subtotal
    tab.subtotal_cents = subtotal
    tab.total_cents = subtotal - tab.discount_cents


def get_tab(tab_id: int) -> Tab:
    return _get_tab(tab_id)


def list_open_tabs() -> list[Tab]:
    return (
        db.session.query(Tab)
        .filter(Tab.status == "OPEN")
        .order_by(Tab.opened_at.desc(), Tab.id.desc())
        .all()
    )


def create_tab(*, employee: Employee, label: str | None = None, customer_id: int | None = None) -> Tab:
    def _op() -> Tab:
        customer = get_customer_for_sale(customer_id)
        tab = Tab(
            number=next_sequence("tab"),
            label=(label or "").strip() or None,
            customer_id=customer.id if customer else None,
            employee_id=employee.id,
            status="OPEN",
            opened_at=utcnow(),
        )
        db.session.add(tab)
        db.session.commit()
        return tab

    return run_with_retry(_op)


def add_line(tab_id: int, *, product_id: int, quantity: int, note: str | None = None) -> Tab:
    """Add a line at the product's current price and recompute the tab."""
    _positive_int(quantity, "quantity")

    def _op() -> Tab:
        tab = _get_tab(tab_id, lock=True)
        _require_open(tab)

        product = db.session.query(Product).filter_by(id=product_id).first()
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        if not product.is_active:
            raise ConflictError(f"Product {product.name} is inactive")

        tab.lines.append(TabLine(
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=product.price_cents,
            line_total_cents=quantity * product.price_cents,
            note=note,
        ))
        recompute_totals(tab)
        db.session.commit()
        return tab

    return run_with_retry(_op)


def remove_line(tab_id: int, line_id: int) -> Tab:
    def _op() -> Tab:
        tab = _get_tab(tab_id, lock=True)
        _require_open(tab)

        line = next((line for line in tab.lines if line.id == line_id), None)
        if line is None:
            raise NotFoundError("Tab line not found")

        tab.lines.remove(line)
        recompute_totals(tab)
        db.session.commit()
        return tab

    return run_with_retry(_op)


def set_discount(tab_id: int, discount_cents: int) -> Tab:
    if not isinstance(discount_cents, int) or isinstance(discount_cents, bool) or discount_cents < 0:
        raise ValidationError([{"field": "discount_cents", "message": "discount_cents must be an integer >= 0"}])

    def _op() -> Tab:
        tab = _get_tab(tab_id, lock=True)
        _require_open(tab)
        subtotal = sum(line.line_total_cents for line in tab.lines)
        if discount_cents > subtotal:
            raise ValidationError([{"field": "discount_cents", "message": "discount_cents cannot exceed the subtotal"}])
        tab.discount_cents = discount_cents
        recompute_totals(tab)
        db.session.commit()
        return tab

    return run_with_retry(_op)


def close_tab(tab_id: int, *, employee: Employee, payment_method: str):
    """
    Convert an OPEN tab into a completed sale.

    The sale is attributed to the employee closing the tab (the one who
    takes the payment into their drawer). Returns the created Sale.
    """
    validate_payment_method(payment_method)

    def _op():
        tab = _get_tab(tab_id, lock=True)
        _require_open(tab)
        if not tab.lines:
            raise ConflictError(f"Tab #{tab.number} has no items")

        products = lock_products(tab_line.product_id for tab_line in tab.lines)
        lines = []
        for tab_line in tab.lines:
            lines.append(LineRequest(
                product=products[tab_line.product_id],
                quantity=tab_line.quantity,
                unit_price_cents=tab_line.unit_price_cents,
            ))
        check_stock(lines)

        recompute_totals(tab)
        sale = record_sale(
            employee=employee,
            lines=lines,
            payment_method=payment_method,
            discount_cents=tab.discount_cents,
            customer=tab.customer,
            tab_number=tab.number,
            tab_id=tab.id,
        )

        tab.status = "CLOSED"
        tab.closed_at = utcnow()
        tab.sale_id = sale.id
        db.session.commit()

        current_app.logger.info(
            "Tab #%s closed into sale #%s (%s cents, %s)",
            tab.number, sale.number, sale.total_cents, payment_method,
        )
        return sale

    return run_with_retry(_op)


def cancel_tab(tab_id: int) -> Tab:
    """OPEN -> CANCELLED. No stock effect: nothing left the shelf yet."""
    def _op() -> Tab:
        tab = _get_tab(tab_id, lock=True)
        _require_open(tab)
        tab.status = "CANCELLED"
        tab.closed_at = utcnow()
        db.session.commit()
        return tab

    return run_with_retry(_op)
