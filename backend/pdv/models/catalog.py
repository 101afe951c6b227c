from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z, utcnow


class Product(db.Model):
    """
    Product master data.

    stock_quantity is a cached counter: it only changes together with a
    StockMovement row (inventory_service) or inside a sale / return.
    Catalog updates never write it.

    Products are never deleted; status INACTIVE hides them from the sale
    screens while keeping sale history intact.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_status_name", "status", "name"),
        db.Index("ix_products_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(64), nullable=False, unique=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=False)
    subcategory = db.Column(db.String(64), nullable=True)
    brand = db.Column(db.String(64), nullable=True)
    location = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    price_cents = db.Column(db.Integer, nullable=False)
    wholesale_price_cents = db.Column(db.Integer, nullable=True)
    wholesale_min_qty = db.Column(db.Integer, nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=5)

    expires_on = db.Column(db.Date, nullable=True)
    alert_expiry = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE")  # ACTIVE, INACTIVE

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r}>"

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"

    @property
    def margin_pct(self) -> float:
        if not self.cost_cents:
            return 0.0
        return round((self.price_cents - self.cost_cents) * 100.0 / self.cost_cents, 2)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "subcategory": self.subcategory,
            "brand": self.brand,
            "location": self.location,
            "cost_cents": self.cost_cents,
            "price_cents": self.price_cents,
            "wholesale_price_cents": self.wholesale_price_cents,
            "wholesale_min_qty": self.wholesale_min_qty,
            "stock_quantity": self.stock_quantity,
            "min_stock": self.min_stock,
            "margin_pct": self.margin_pct,
            "expires_on": to_iso_date(self.expires_on),
            "alert_expiry": self.alert_expiry,
            "status": self.status,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock audit trail.

    quantity is always a positive magnitude; kind carries the direction.
    stock_before / stock_after snapshot the counter around the movement so
    the log can be replayed and checked against Product.stock_quantity.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    # Set when the movement targets a variant counter instead of the product one
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True, index=True)

    kind = db.Column(db.String(8), nullable=False, index=True)  # IN, OUT, ADJUST
    quantity = db.Column(db.Integer, nullable=False)

    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(128), nullable=False)
    note = db.Column(db.String(255), nullable=True)

    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    tab_id = db.Column(db.Integer, db.ForeignKey("tabs.id"), nullable=True, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))
    employee = db.relationship("Employee")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "variant_id": self.variant_id,
            "kind": self.kind,
            "quantity": self.quantity,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "reason": self.reason,
            "note": self.note,
            "employee_id": self.employee_id,
            "employee_name": self.employee.name if self.employee else None,
            "sale_id": self.sale_id,
            "tab_id": self.tab_id,
            "return_id": self.return_id,
            "created_at": to_utc_z(self.created_at),
        }
