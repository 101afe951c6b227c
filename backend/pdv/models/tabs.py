from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Tab(db.Model):
    """
    Open tab (comanda): a mutable pre-sale tally.

    Totals are always recomputed from the full line set. Closing converts the
    tab into a Sale and links it through sale_id.
    """
    __tablename__ = "tabs"
    __table_args__ = (
        db.Index("ix_tabs_status_opened", "status", "opened_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Monotonic number from the "tab" sequence
    number = db.Column(db.Integer, nullable=False, unique=True)

    # Free text shown on the tab board (table number, customer nickname...)
    label = db.Column(db.String(64), nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="OPEN")  # OPEN, CLOSED, CANCELLED

    opened_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    closed_at = db.Column(db.DateTime, nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, unique=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer")
    employee = db.relationship("Employee")
    sale = db.relationship("Sale", backref=db.backref("tab", uselist=False))
    lines = db.relationship(
        "TabLine",
        backref="tab",
        lazy=True,
        order_by="TabLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "label": self.label,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "employee_id": self.employee_id,
            "employee_name": self.employee.name if self.employee else None,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "sale_id": self.sale_id,
            "lines": [line.to_dict() for line in self.lines],
            "version_id": self.version_id,
        }


class TabLine(db.Model):
    """Line on an open tab; unit price is a snapshot taken when the line was added."""
    __tablename__ = "tab_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_tab_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tab_id = db.Column(db.Integer, db.ForeignKey("tabs.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tab_id": self.tab_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
