"""
Sales Service - completed sales and their stock effect

A sale is written in one unit of work: number allocation, header, lines,
one OUT movement per line and (optionally) loyalty points. Every check runs
before the first write, so a rejected sale leaves nothing behind.

Cancelling a sale flips its status, cancels its PENDING returns and takes
back the loyalty points it earned. Stock comes back only when the caller asks
for it with restore_stock=True, and then only the quantity that processed
returns have not already put back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Customer, Employee, LoyaltyTransaction, Product, Return, ReturnLine, Sale, SaleLine
from ..models.sales import PAYMENT_METHODS
from ..time_utils import day_bounds, utcnow
from ..validation import coerce_int
from .concurrency import lock_for_update, lock_products, run_with_retry
from .inventory_service import apply_movement, ensure_available
from .pagination import paginate
from .sequence_service import next_sequence
from . import customer_service


@dataclass
class LineRequest:
    """One requested line, already resolved to a product and a unit price."""
    product: Product
    quantity: int
    unit_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


def validate_payment_method(method) -> str:
    if method not in PAYMENT_METHODS:
        raise ValidationError([{
            "field": "payment_method",
            "message": f"payment_method must be one of {', '.join(PAYMENT_METHODS)}",
        }])
    return method


def _parse_items(items) -> list[tuple[int, int]]:
    if not isinstance(items, list) or not items:
        raise ValidationError([{"field": "items", "message": "items must be a non-empty list"}])

    parsed = []
    errors = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            errors.append({"field": f"items[{idx}]", "message": "item must be an object"})
            continue
        try:
            product_id = coerce_int(item.get("product_id"), "product_id")
            quantity = coerce_int(item.get("quantity"), "quantity")
        except ValueError as e:
            errors.append({"field": f"items[{idx}]", "message": str(e)})
            continue
        if quantity <= 0:
            errors.append({"field": f"items[{idx}].quantity", "message": "quantity must be > 0"})
            continue
        parsed.append((product_id, quantity))

    if errors:
        raise ValidationError(errors)
    return parsed


def check_stock(lines: list[LineRequest]) -> None:
    """Reject if any product cannot cover the summed quantity of its lines."""
    totals: dict[int, int] = {}
    products: dict[int, Product] = {}
    for line in lines:
        totals[line.product.id] = totals.get(line.product.id, 0) + line.quantity
        products[line.product.id] = line.product

    for product_id, quantity in totals.items():
        ensure_available(products[product_id], quantity)


def get_customer_for_sale(customer_id: int | None) -> Customer | None:
    if customer_id is None:
        return None
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if not customer:
        raise NotFoundError("Customer not found")
    if not customer.is_active:
        raise ConflictError("Customer is inactive")
    return customer


def record_sale(
    *,
    employee: Employee,
    lines: list[LineRequest],
    payment_method: str,
    discount_cents: int = 0,
    customer: Customer | None = None,
    tab_number: int | None = None,
    tab_id: int | None = None,
) -> Sale:
    """
    Write a completed sale into the current session, without committing.

    Callers must already hold the product rows (locked) and have run
    check_stock; this function only writes.
    """
    subtotal = sum(line.line_total_cents for line in lines)
    if discount_cents < 0 or discount_cents > subtotal:
        raise ValidationError([{
            "field": "discount_cents",
            "message": "discount_cents must be between 0 and the subtotal",
        }])

    sale = Sale(
        number=next_sequence("sale"),
        employee_id=employee.id,
        customer_id=customer.id if customer else None,
        subtotal_cents=subtotal,
        discount_cents=discount_cents,
        total_cents=subtotal - discount_cents,
        payment_method=payment_method,
        status="COMPLETED",
        created_at=utcnow(),
    )
    db.session.add(sale)
    db.session.flush()

    reason = f"Sale #{sale.number}"
    if tab_number is not None:
        reason = f"{reason} (Tab #{tab_number})"

    for line in lines:
        db.session.add(SaleLine(
            sale_id=sale.id,
            product_id=line.product.id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            line_total_cents=line.line_total_cents,
        ))
        apply_movement(
            line.product,
            kind="OUT",
            quantity=line.quantity,
            reason=reason,
            employee_id=employee.id,
            sale_id=sale.id,
            tab_id=tab_id,
        )

    cents_per_point = current_app.config.get("LOYALTY_CENTS_PER_POINT", 0)
    if customer is not None and cents_per_point > 0:
        points = sale.total_cents // cents_per_point
        if points > 0:
            customer_service.record_loyalty(
                customer,
                points=points,
                reason=f"Points earned on sale #{sale.number}",
                sale_id=sale.id,
                employee_id=employee.id,
            )

    return sale


def create_sale(
    *,
    employee: Employee,
    items,
    payment_method: str,
    discount_cents: int = 0,
    customer_id: int | None = None,
) -> Sale:
    """
    Direct sale from the PDV screen.

    Unit prices are taken from the product's current price. Inactive
    products, unknown products and insufficient stock reject the sale.
    """
    parsed = _parse_items(items)
    validate_payment_method(payment_method)
    if not isinstance(discount_cents, int) or isinstance(discount_cents, bool):
        raise ValidationError([{"field": "discount_cents", "message": "discount_cents must be an integer"}])

    def _op() -> Sale:
        customer = get_customer_for_sale(customer_id)

        products = lock_products(product_id for product_id, _ in parsed)
        lines = []
        for product_id, quantity in parsed:
            product = products.get(product_id)
            if not product:
                raise NotFoundError("Product not found", details={"product_id": product_id})
            if not product.is_active:
                raise ConflictError(f"Product {product.name} is inactive", details={"product_id": product_id})
            lines.append(LineRequest(product=product, quantity=quantity, unit_price_cents=product.price_cents))

        check_stock(lines)

        sale = record_sale(
            employee=employee,
            lines=lines,
            payment_method=payment_method,
            discount_cents=discount_cents,
            customer=customer,
        )
        db.session.commit()
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def _processed_return_quantities(sale_id: int) -> dict[int, int]:
    rows = (
        db.session.query(ReturnLine.sale_line_id, func.coalesce(func.sum(ReturnLine.quantity), 0))
        .join(Return, Return.id == ReturnLine.return_id)
        .filter(Return.sale_id == sale_id, Return.status == "PROCESSED")
        .group_by(ReturnLine.sale_line_id)
        .all()
    )
    return {sale_line_id: int(qty) for sale_line_id, qty in rows}


def _reverse_loyalty(sale: Sale, *, employee_id: int) -> None:
    if sale.customer_id is None:
        return
    earned = (
        db.session.query(func.coalesce(func.sum(LoyaltyTransaction.points), 0))
        .filter(LoyaltyTransaction.sale_id == sale.id)
        .scalar()
    )
    if not earned or earned <= 0:
        return

    customer = lock_for_update(db.session.query(Customer).filter_by(id=sale.customer_id)).first()
    # Points already spent elsewhere cannot be clawed back below zero
    points = min(int(earned), customer.loyalty_points)
    if points > 0:
        customer_service.record_loyalty(
            customer,
            points=-points,
            reason=f"Points reversed on cancelled sale #{sale.number}",
            sale_id=sale.id,
            employee_id=employee_id,
        )


def cancel_sale(
    *,
    sale_id: int,
    employee: Employee,
    reason: str | None = None,
    restore_stock: bool = False,
) -> Sale:
    """
    COMPLETED -> CANCELLED.

    In the same transaction:
    - PENDING returns of the sale become CANCELLED
    - points earned on the sale are debited, capped at the current balance
    - with restore_stock=True each line goes back to stock with an IN
      movement "Sale #N cancelled", minus what PROCESSED returns already
      restocked
    """
    def _op() -> Sale:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found")
        if sale.status == "CANCELLED":
            raise ConflictError("Sale is already cancelled")

        sale.status = "CANCELLED"
        sale.cancelled_at = utcnow()
        sale.cancelled_by_id = employee.id
        sale.cancel_reason = reason

        pending = lock_for_update(
            db.session.query(Return).filter_by(sale_id=sale.id, status="PENDING")
        ).all()
        for doc in pending:
            doc.status = "CANCELLED"

        if restore_stock:
            restocked = _processed_return_quantities(sale.id)
            products = lock_products(line.product_id for line in sale.lines)
            for line in sale.lines:
                quantity = line.quantity - restocked.get(line.id, 0)
                if quantity <= 0:
                    continue
                apply_movement(
                    products[line.product_id],
                    kind="IN",
                    quantity=quantity,
                    reason=f"Sale #{sale.number} cancelled",
                    employee_id=employee.id,
                    sale_id=sale.id,
                )

        _reverse_loyalty(sale, employee_id=employee.id)

        db.session.commit()
        current_app.logger.info(
            "Sale #%s cancelled by employee %s (restore_stock=%s)",
            sale.number, employee.id, restore_stock,
        )
        return sale

    return run_with_retry(_op)


def list_sales(
    *,
    start: date | None = None,
    end: date | None = None,
    status: str | None = None,
    employee_id: int | None = None,
    customer_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Sale)

    if start is not None:
        lower, _ = day_bounds(start)
        query = query.filter(Sale.created_at >= lower)
    if end is not None:
        _, upper = day_bounds(end)
        query = query.filter(Sale.created_at < upper)
    if status:
        query = query.filter(Sale.status == status)
    if employee_id is not None:
        query = query.filter(Sale.employee_id == employee_id)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)

    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    return paginate(query, page, per_page)
