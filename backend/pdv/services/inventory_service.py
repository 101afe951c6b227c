# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
Inventory Invariants (authoritative)

Stock model:
- Product.stock_quantity is a cached counter.
- It changes only in the same transaction as a StockMovement row
  (apply_movement); catalog edits never write it.
- Movements are append-only and store a positive quantity; kind carries
  the direction (IN adds, OUT subtracts, ADJUST sets).
- Each movement snapshots stock_before / stock_after, so replaying the log
  reproduces the counter (audit_product_stock).

Business invariants:
- Stock may never go negative: OUT larger than the current stock is
  rejected before anything is written.
- ADJUST with a zero delta is rejected (no-op guard).

Time handling:
- Internal datetimes are UTC-naive; date filters are whole days.
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..models import Product, ProductVariant, StockMovement
from ..time_utils import day_bounds
from .concurrency import lock_for_update, run_with_retry
from .pagination import paginate


MOVEMENT_KINDS = ("IN", "OUT", "ADJUST")


def get_product_for_stock(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def ensure_available(product: Product, quantity: int) -> None:
    if quantity > product.stock_quantity:
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}. "
            f"Available: {product.stock_quantity}, requested: {quantity}",
            details={
                "product_id": product.id,
                "available": product.stock_quantity,
                "requested": quantity,
            },
        )


def apply_movement(
    product: Product,
    *,
    kind: str,
    quantity: int,
    reason: str,
    note: str | None = None,
    employee_id: int | None = None,
    sale_id: int | None = None,
    tab_id: int | None = None,
    return_id: int | None = None,
    new_stock: int | None = None,
    variant=None,
) -> StockMovement:
    """
    Write one movement and move the product counter, without committing.

    Callers run their own checks first and commit the whole unit of work.
    For ADJUST, new_stock is the target value and quantity is |delta|.
    With a variant the variant counter moves instead and the product
    counter is left alone.
    """
    target = variant if variant is not None else product
    before = target.stock_quantity
    if kind == "IN":
        after = before + quantity
    elif kind == "OUT":
        after = before - quantity
    elif kind == "ADJUST":
        after = new_stock
    else:
        raise ValueError(f"Unknown movement kind: {kind}")

    if after < 0:
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}",
            details={"product_id": product.id, "available": before, "requested": quantity},
        )

    movement = StockMovement(
        product_id=product.id,
        variant_id=variant.id if variant is not None else None,
        kind=kind,
        quantity=quantity,
        stock_before=before,
        stock_after=after,
        reason=reason,
        note=note,
        employee_id=employee_id,
        sale_id=sale_id,
        tab_id=tab_id,
        return_id=return_id,
    )
    target.stock_quantity = after
    db.session.add(movement)
    return movement


def _movement_result(movement: StockMovement, **extra) -> dict:
    data = movement.to_dict()
    data["previous_stock"] = movement.stock_before
    data["current_stock"] = movement.stock_after
    data.update(extra)
    return data


def _check_quantity(quantity) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError([{"field": "quantity", "message": "quantity must be a positive integer"}])


def _check_reason(reason) -> None:
    if not reason or not str(reason).strip():
        raise ValidationError([{"field": "reason", "message": "reason is required"}])


def stock_entry(
    *,
    product_id: int,
    quantity: int,
    reason: str,
    note: str | None = None,
    employee_id: int | None = None,
) -> dict:
    """Receive goods: IN movement, stock += quantity."""
    _check_quantity(quantity)
    _check_reason(reason)

    def _op() -> dict:
        product = get_product_for_stock(product_id, lock=True)
        movement = apply_movement(
            product, kind="IN", quantity=quantity, reason=reason,
            note=note, employee_id=employee_id,
        )
        db.session.commit()
        return _movement_result(movement)

    return run_with_retry(_op)


def stock_exit(
    *,
    product_id: int,
    quantity: int,
    reason: str,
    note: str | None = None,
    employee_id: int | None = None,
) -> dict:
    """
    Remove goods (loss, internal use, ...): OUT movement, stock -= quantity.

    Raises InsufficientStockError without writing when quantity > stock.
    """
    _check_quantity(quantity)
    _check_reason(reason)

    def _op() -> dict:
        product = get_product_for_stock(product_id, lock=True)
        ensure_available(product, quantity)
        movement = apply_movement(
            product, kind="OUT", quantity=quantity, reason=reason,
            note=note, employee_id=employee_id,
        )
        db.session.commit()
        return _movement_result(movement)

    return run_with_retry(_op)


def stock_adjust(
    *,
    product_id: int,
    new_stock: int,
    reason: str,
    note: str | None = None,
    employee_id: int | None = None,
) -> dict:
    """
    Set stock to a counted value: ADJUST movement with quantity |delta|.

    The stored note ends with "Stock adjusted from X to Y".
    """
    if not isinstance(new_stock, int) or isinstance(new_stock, bool) or new_stock < 0:
        raise ValidationError([{"field": "new_stock", "message": "new_stock must be an integer >= 0"}])
    _check_reason(reason)

    def _op() -> dict:
        product = get_product_for_stock(product_id, lock=True)
        before = product.stock_quantity
        delta = new_stock - before
        if delta == 0:
            raise ConflictError("New stock equals current stock", details={"current_stock": before})

        summary = f"Stock adjusted from {before} to {new_stock}"
        full_note = f"{note} - {summary}" if note else summary

        movement = apply_movement(
            product, kind="ADJUST", quantity=abs(delta), reason=reason,
            note=full_note, employee_id=employee_id, new_stock=new_stock,
        )
        db.session.commit()
        return _movement_result(movement, delta=delta)

    return run_with_retry(_op)


def list_movements(
    *,
    product_id: int | None = None,
    kind: str | None = None,
    start: date | None = None,
    end: date | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Movement history, newest first, with product / kind / whole-day filters."""
    query = db.session.query(StockMovement)

    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if kind:
        if kind not in MOVEMENT_KINDS:
            raise ValidationError([{"field": "kind", "message": f"kind must be one of {', '.join(MOVEMENT_KINDS)}"}])
        query = query.filter(StockMovement.kind == kind)
    if start is not None:
        lower, _ = day_bounds(start)
        query = query.filter(StockMovement.created_at >= lower)
    if end is not None:
        _, upper = day_bounds(end)
        query = query.filter(StockMovement.created_at < upper)

    query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    return paginate(query, page, per_page)


def _replay(movements) -> int:
    replayed = 0
    for movement in movements:
        if movement.kind == "IN":
            replayed += movement.quantity
        elif movement.kind == "OUT":
            replayed -= movement.quantity
        else:
            replayed = movement.stock_after
    return replayed


def audit_product_stock(product_id: int) -> dict:
    """
    Replay the movement log of a product and compare with the counter.

    IN adds, OUT subtracts, ADJUST sets the recorded stock_after.
    """
    product = get_product_for_stock(product_id)

    movements = (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id, StockMovement.variant_id.is_(None))
        .order_by(StockMovement.id.asc())
        .all()
    )

    replayed = _replay(movements)
    return {
        "product_id": product.id,
        "stock_quantity": product.stock_quantity,
        "replayed_quantity": replayed,
        "movement_count": len(movements),
        "consistent": replayed == product.stock_quantity,
    }


def audit_variant_stock(variant_id: int) -> dict:
    """Same replay as audit_product_stock, over one variant's movements."""
    variant = db.session.query(ProductVariant).filter_by(id=variant_id).first()
    if variant is None:
        raise NotFoundError("Variant not found", details={"variant_id": variant_id})

    movements = (
        db.session.query(StockMovement)
        .filter(StockMovement.variant_id == variant_id)
        .order_by(StockMovement.id.asc())
        .all()
    )

    replayed = _replay(movements)
    return {
        "variant_id": variant.id,
        "product_id": variant.product_id,
        "stock_quantity": variant.stock_quantity,
        "replayed_quantity": replayed,
        "movement_count": len(movements),
        "consistent": replayed == variant.stock_quantity,
    }
