# backend/pdv/services/products_service.py
"""
Products Service

Catalog maintenance. Stock is only touched at creation time (initial stock,
recorded as an IN movement); every later stock change goes through
inventory_service.
"""
from __future__ import annotations

from datetime import timedelta

from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError
from ..models import Product, StockMovement
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .inventory_service import apply_movement
from .pagination import paginate


PRODUCT_FIELDS = {
    "code", "barcode", "name", "description", "category", "subcategory", "brand",
    "location", "cost_cents", "price_cents", "wholesale_price_cents",
    "wholesale_min_qty", "min_stock", "expires_on", "alert_expiry",
}

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS | {"stock_quantity"},
    required_on_create={"code", "name", "category", "price_cents"},
)

# stock_quantity is deliberately absent: updates never move stock
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS | {"status"},
    choices={"status": {"ACTIVE", "INACTIVE"}},
)


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def _ensure_unique(code: str | None, barcode: str | None, exclude_id: int | None = None) -> None:
    if code:
        query = db.session.query(Product.id).filter(Product.code == code)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first():
            raise ConflictError("Product code already registered", details={"field": "code"})
    if barcode:
        query = db.session.query(Product.id).filter(Product.barcode == barcode)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first():
            raise ConflictError("Barcode already registered", details={"field": "barcode"})


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    brand: str | None = None,
    status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with search and filters.

    search matches name, code, barcode, category or brand (substring).
    """
    query = db.session.query(Product)

    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(like),
            Product.code.ilike(like),
            Product.barcode.ilike(like),
            Product.category.ilike(like),
            Product.brand.ilike(like),
        ))
    if category:
        query = query.filter(Product.category == category)
    if brand:
        query = query.filter(Product.brand == brand)
    if status:
        query = query.filter(Product.status == status)

    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page, per_page)


def get_product_detail(product_id: int) -> dict:
    """Product plus its 10 latest stock movements."""
    product = get_product(product_id)
    movements = (
        product.movements
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(10)
        .all()
    )
    data = product.to_dict()
    data["recent_movements"] = [m.to_dict() for m in movements]
    return data


def find_by_code(code: str) -> Product:
    """Lookup used by the barcode scanner: code or barcode, ACTIVE only."""
    product = (
        db.session.query(Product)
        .filter(
            or_(Product.code == code, Product.barcode == code),
            Product.status == "ACTIVE",
        )
        .first()
    )
    if not product:
        raise NotFoundError("Product not found")
    return product


def list_categories() -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.status == "ACTIVE")
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [row[0] for row in rows]


def list_low_stock(limit: int | None = None) -> list[Product]:
    query = (
        db.session.query(Product)
        .filter(
            Product.status == "ACTIVE",
            Product.stock_quantity <= Product.min_stock,
        )
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def list_expiring(days: int) -> list[Product]:
    """Products flagged for expiry alerts that expire within the next `days` days."""
    today = utcnow().date()
    return (
        db.session.query(Product)
        .filter(
            Product.status == "ACTIVE",
            Product.alert_expiry.is_(True),
            Product.expires_on >= today,
            Product.expires_on <= today + timedelta(days=days),
        )
        .order_by(Product.expires_on.asc())
        .all()
    )


def list_expired() -> list[Product]:
    today = utcnow().date()
    return (
        db.session.query(Product)
        .filter(
            Product.status == "ACTIVE",
            Product.alert_expiry.is_(True),
            Product.expires_on < today,
        )
        .order_by(Product.expires_on.asc())
        .all()
    )


def build_product(patch: dict, *, employee_id: int | None, reason: str = "Initial stock") -> Product:
    """
    Add a product (and its initial-stock movement) to the session, no commit.

    Shared by create_product and the CSV importer.
    """
    _ensure_unique(patch.get("code"), patch.get("barcode"))

    initial_stock = patch.pop("stock_quantity", None) or 0

    product = Product(**patch)
    product.stock_quantity = 0
    product.status = "ACTIVE"
    db.session.add(product)
    db.session.flush()

    if initial_stock > 0:
        apply_movement(
            product, kind="IN", quantity=initial_stock,
            reason=reason, employee_id=employee_id,
        )
    return product


def create_product(payload: dict, *, employee_id: int | None = None) -> Product:
    """
    Create a product from a raw JSON payload.

    Raises:
        ValidationError: bad or missing fields
        ConflictError: code or barcode already registered
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    product = build_product(patch, employee_id=employee_id)
    db.session.commit()
    return product


def update_product(product_id: int, payload: dict) -> Product:
    """Update catalog fields. Stock is not writable here."""
    product = get_product(product_id)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    _ensure_unique(
        patch.get("code") if patch.get("code") != product.code else None,
        patch.get("barcode") if patch.get("barcode") != product.barcode else None,
        exclude_id=product.id,
    )

    for key, value in patch.items():
        setattr(product, key, value)

    db.session.commit()
    return product


def deactivate_product(product_id: int) -> Product:
    """Soft delete: preserve IDs and historical references."""
    product = get_product(product_id)
    if product.status != "INACTIVE":
        product.status = "INACTIVE"
        db.session.commit()
    return product
