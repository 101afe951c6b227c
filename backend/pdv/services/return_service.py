# Overview: Service-layer operations for returns; validation against the sale and restocking.

"""
Returns

LIFECYCLE:
1. PENDING: created against a COMPLETED sale; nothing moves yet
2. PROCESSED: goods back on the shelf (IN movements referencing the return)
3. CANCELLED: the sale was cancelled first; a cancelled return never restocks

Quantities are checked per product against the sold quantity minus what
earlier returns of the same sale already claimed. Refund value uses the
unit price captured on the sale line, never the current product price.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Employee, Return, ReturnLine, Sale, SaleLine
from ..models.documents import RETURN_REASONS
from ..time_utils import utcnow
from ..validation import coerce_int
from .concurrency import lock_for_update, lock_products, run_with_retry
from .inventory_service import apply_movement
from .pagination import paginate
from .sequence_service import next_sequence


def _parse_items(items) -> dict[int, int]:
    """Returns {product_id: quantity}, merging repeated products."""
    if not isinstance(items, list) or not items:
        raise ValidationError([{"field": "items", "message": "items must be a non-empty list"}])

    requested: dict[int, int] = {}
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
        requested[product_id] = requested.get(product_id, 0) + quantity

    if errors:
        raise ValidationError(errors)
    return requested


def _returned_by_sale_line(sale_id: int) -> dict[int, int]:
    """Quantities claimed per sale line by PENDING and PROCESSED returns."""
    rows = (
        db.session.query(ReturnLine.sale_line_id, func.coalesce(func.sum(ReturnLine.quantity), 0))
        .join(Return, Return.id == ReturnLine.return_id)
        .filter(Return.sale_id == sale_id, Return.status != "CANCELLED")
        .group_by(ReturnLine.sale_line_id)
        .all()
    )
    return {sale_line_id: int(qty) for sale_line_id, qty in rows}


def create_return(
    *,
    employee: Employee,
    sale_id: int,
    items,
    reason: str,
    note: str | None = None,
    customer_id: int | None = None,
) -> Return:
    """
    Record a PENDING return.

    Raises:
        NotFoundError: unknown sale
        ConflictError: sale not COMPLETED, product not on the sale, or
            quantity above what is still returnable
    """
    if reason not in RETURN_REASONS:
        raise ValidationError([{"field": "reason", "message": f"reason must be one of {', '.join(RETURN_REASONS)}"}])
    requested = _parse_items(items)

    def _op() -> Return:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found")
        if sale.status != "COMPLETED":
            raise ConflictError(f"Sale #{sale.number} is {sale.status}")

        already = _returned_by_sale_line(sale.id)
        lines_by_product: dict[int, list[SaleLine]] = {}
        for line in sale.lines:
            lines_by_product.setdefault(line.product_id, []).append(line)

        allocations: list[tuple[SaleLine, int]] = []
        for product_id, quantity in requested.items():
            sale_lines = lines_by_product.get(product_id)
            if not sale_lines:
                raise ConflictError(
                    f"Product {product_id} is not on sale #{sale.number}",
                    details={"product_id": product_id},
                )

            returnable = sum(line.quantity - already.get(line.id, 0) for line in sale_lines)
            if quantity > returnable:
                raise ConflictError(
                    "Return quantity exceeds the quantity sold",
                    details={"product_id": product_id, "returnable": returnable, "requested": quantity},
                )

            remaining = quantity
            for line in sale_lines:
                free = line.quantity - already.get(line.id, 0)
                take = min(free, remaining)
                if take > 0:
                    allocations.append((line, take))
                    remaining -= take
                if remaining == 0:
                    break

        doc = Return(
            number=next_sequence("return"),
            sale_id=sale.id,
            customer_id=customer_id if customer_id is not None else sale.customer_id,
            employee_id=employee.id,
            reason=reason,
            note=note,
            status="PENDING",
        )
        db.session.add(doc)
        db.session.flush()

        total = 0
        for sale_line, quantity in allocations:
            line_total = quantity * sale_line.unit_price_cents
            total += line_total
            db.session.add(ReturnLine(
                return_id=doc.id,
                sale_line_id=sale_line.id,
                product_id=sale_line.product_id,
                quantity=quantity,
                unit_price_cents=sale_line.unit_price_cents,
                line_total_cents=line_total,
            ))
        doc.total_cents = total

        db.session.commit()
        return doc

    return run_with_retry(_op)


def process_return(return_id: int, *, employee: Employee) -> Return:
    """PENDING -> PROCESSED, putting every line back into stock atomically."""
    def _op() -> Return:
        doc = lock_for_update(db.session.query(Return).filter_by(id=return_id)).first()
        if not doc:
            raise NotFoundError("Return not found")
        if doc.status != "PENDING":
            raise ConflictError(f"Return #{doc.number} is already {doc.status}")
        if doc.sale.status != "COMPLETED":
            raise ConflictError(
                f"Sale #{doc.sale.number} is {doc.sale.status}",
                details={"sale_id": doc.sale_id},
            )

        products = lock_products(line.product_id for line in doc.lines)
        for line in doc.lines:
            apply_movement(
                products[line.product_id],
                kind="IN",
                quantity=line.quantity,
                reason=f"Return #{doc.number}",
                employee_id=employee.id,
                sale_id=doc.sale_id,
                return_id=doc.id,
            )

        doc.status = "PROCESSED"
        doc.processed_at = utcnow()
        doc.processed_by_id = employee.id
        db.session.commit()
        return doc

    return run_with_retry(_op)


def get_return(return_id: int) -> Return:
    doc = db.session.query(Return).filter_by(id=return_id).first()
    if not doc:
        raise NotFoundError("Return not found")
    return doc


def list_returns(*, status: str | None = None, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Return)
    if status:
        query = query.filter(Return.status == status)
    query = query.order_by(Return.created_at.desc(), Return.id.desc())
    return paginate(query, page, per_page)
