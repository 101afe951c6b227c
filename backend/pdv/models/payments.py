from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


GATEWAYS = ("STONE", "MERCADOPAGO")
PAYMENT_KINDS = ("CREDIT", "DEBIT", "PIX")
PAYMENT_STATUSES = ("PENDING", "PROCESSING", "APPROVED", "DECLINED", "CANCELLED")


class PaymentTransaction(db.Model):
    """
    Card / PIX transaction handed to a payment gateway.

    LIFECYCLE:
    - PENDING: created, waiting for the terminal
    - PROCESSING: terminal picked it up
    - APPROVED / DECLINED: gateway answer (final)
    - CANCELLED: abandoned before approval (final)

    An APPROVED transaction can be linked to the sale it paid for.
    """
    __tablename__ = "payment_transactions"
    __table_args__ = (
        db.Index("ix_payment_txns_status_created", "status", "created_at"),
    )

    # Opaque id shown on the terminal ("TXN-...")
    id = db.Column(db.String(40), primary_key=True)

    gateway = db.Column(db.String(16), nullable=False, index=True)
    kind = db.Column(db.String(8), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    installments = db.Column(db.Integer, nullable=False, default=1)

    status = db.Column(db.String(16), nullable=False, default="PENDING")

    authorization_code = db.Column(db.String(16), nullable=True)
    nsu = db.Column(db.String(16), nullable=True)
    card_brand = db.Column(db.String(16), nullable=True)
    message = db.Column(db.String(255), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    sale = db.relationship("Sale", backref=db.backref("payment_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gateway": self.gateway,
            "kind": self.kind,
            "amount_cents": self.amount_cents,
            "installments": self.installments,
            "status": self.status,
            "authorization_code": self.authorization_code,
            "nsu": self.nsu,
            "card_brand": self.card_brand,
            "message": self.message,
            "sale_id": self.sale_id,
            "employee_id": self.employee_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
