from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


PAYMENT_METHODS = ("CASH", "DEBIT_CARD", "CREDIT_CARD", "PIX")


class Sale(db.Model):
    """
    Completed sale.

    Sales are created COMPLETED in one transaction together with their lines
    and the matching OUT stock movements. The only later change allowed is the
    COMPLETED -> CANCELLED transition.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.Index("ix_sales_employee_created", "employee_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Monotonic number from the "sale" sequence
    number = db.Column(db.Integer, nullable=False, unique=True)

    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # All amounts in cents; total = subtotal - discount
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED")  # COMPLETED, CANCELLED

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # Cancel audit trail
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    employee = db.relationship("Employee", foreign_keys=[employee_id])
    cancelled_by = db.relationship("Employee", foreign_keys=[cancelled_by_id])
    customer = db.relationship("Customer", backref=db.backref("sales", lazy="dynamic"))
    lines = db.relationship("SaleLine", backref="sale", lazy=True, order_by="SaleLine.id")

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "number": self.number,
            "employee_id": self.employee_id,
            "employee_name": self.employee.name if self.employee else None,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by_id": self.cancelled_by_id,
            "cancel_reason": self.cancel_reason,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """Line item on a sale; unit price is captured when the sale is made."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_code": self.product.code if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
