from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


RETURN_REASONS = ("DEFECT", "REGRET", "EXCHANGE", "DAMAGED")


class Return(db.Model):
    """
    Product return against a completed sale.

    LIFECYCLE:
    1. PENDING: return recorded, goods not yet back on the shelf
    2. PROCESSED: stock incremented with IN movements referencing the return
    3. CANCELLED: the sale was cancelled before the return was processed

    Lines reference the original sale line so returned quantities can never
    exceed what was sold.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.Index("ix_returns_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Monotonic number from the "return" sequence
    number = db.Column(db.Integer, nullable=False, unique=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)

    reason = db.Column(db.String(16), nullable=False)  # DEFECT, REGRET, EXCHANGE, DAMAGED
    note = db.Column(db.Text, nullable=True)

    # Refund value: sum of returned quantity x original unit price
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING, PROCESSED, CANCELLED

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    processed_at = db.Column(db.DateTime, nullable=True)
    processed_by_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True))
    employee = db.relationship("Employee", foreign_keys=[employee_id])
    lines = db.relationship("ReturnLine", backref="return_doc", lazy=True, order_by="ReturnLine.id")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "sale_id": self.sale_id,
            "sale_number": self.sale.number if self.sale else None,
            "customer_id": self.customer_id,
            "employee_id": self.employee_id,
            "reason": self.reason,
            "note": self.note,
            "total_cents": self.total_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "processed_at": to_utc_z(self.processed_at),
            "processed_by_id": self.processed_by_id,
            "lines": [line.to_dict() for line in self.lines],
            "version_id": self.version_id,
        }


class ReturnLine(db.Model):
    """Returned quantity of one sale line, refunded at the original unit price."""
    __tablename__ = "return_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_return_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    sale_line_id = db.Column(db.Integer, db.ForeignKey("sale_lines.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale_line = db.relationship("SaleLine", backref=db.backref("return_lines", lazy=True))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "sale_line_id": self.sale_line_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class SequenceCounter(db.Model):
    """
    Named monotonic counters (sale, tab, return).

    The unique name plus an in-place UPDATE keeps allocation collision free
    under concurrent requests.
    """
    __tablename__ = "sequence_counters"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), nullable=False, unique=True)
    next_value = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "next_value": self.next_value,
            "updated_at": to_utc_z(self.updated_at),
        }
