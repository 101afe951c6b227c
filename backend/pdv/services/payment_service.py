# Overview: Service-layer operations for card / PIX transactions behind a gateway adapter.

"""
Payment transactions

No real acquirer is contacted. Gateway behaviour (authorization codes, NSU,
card brand picking) lives behind PaymentGateway so a real integration can
replace SimulatedGateway without touching the state machine below.

STATE MACHINE:
    PENDING -> PROCESSING -> APPROVED | DECLINED
    PENDING ------------------> APPROVED | DECLINED
    any non-APPROVED ---------> CANCELLED
"""

from __future__ import annotations

import random
import secrets
import string
import time

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import PaymentTransaction, Sale
from ..models.payments import GATEWAYS, PAYMENT_KINDS, PAYMENT_STATUSES
from ..validation import coerce_int
from .concurrency import lock_for_update, run_with_retry


CARD_BRANDS = ("VISA", "MASTERCARD", "ELO", "AMEX", "HIPERCARD")
MAX_INSTALLMENTS = 12
DEFAULT_LIST_LIMIT = 50


class PaymentGateway:
    """What the state machine needs from an acquirer."""

    def authorization_code(self) -> str:
        raise NotImplementedError

    def nsu(self) -> str:
        raise NotImplementedError

    def card_brand(self) -> str:
        raise NotImplementedError


class SimulatedGateway(PaymentGateway):
    """Demo gateway; pass a seeded random.Random for reproducible output."""

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def authorization_code(self) -> str:
        alphabet = string.ascii_uppercase + string.digits
        return "".join(self.rng.choice(alphabet) for _ in range(6))

    def nsu(self) -> str:
        # last 12 digits of a millisecond clock, as terminals print it
        return str(int(time.time() * 1000))[-12:]

    def card_brand(self) -> str:
        return self.rng.choice(CARD_BRANDS)


def get_gateway() -> PaymentGateway:
    gateway = current_app.extensions.get("pdv_payment_gateway")
    if gateway is None:
        gateway = SimulatedGateway()
        current_app.extensions["pdv_payment_gateway"] = gateway
    return gateway


def _new_transaction_id() -> str:
    return f"TXN-{secrets.token_hex(8).upper()}"


def _get_transaction(transaction_id: str, *, lock: bool = False) -> PaymentTransaction:
    query = db.session.query(PaymentTransaction).filter_by(id=transaction_id)
    if lock:
        query = lock_for_update(query)
    txn = query.first()
    if not txn:
        raise NotFoundError("Transaction not found")
    return txn


def start_payment(
    *,
    gateway: str,
    kind: str,
    amount_cents,
    installments=1,
    employee_id: int | None = None,
) -> PaymentTransaction:
    errors = []
    if gateway not in GATEWAYS:
        errors.append({"field": "gateway", "message": f"gateway must be one of {', '.join(GATEWAYS)}"})
    if kind not in PAYMENT_KINDS:
        errors.append({"field": "kind", "message": f"kind must be one of {', '.join(PAYMENT_KINDS)}"})

    try:
        amount_cents = coerce_int(amount_cents, "amount_cents")
        if amount_cents <= 0:
            errors.append({"field": "amount_cents", "message": "amount_cents must be > 0"})
    except ValueError as e:
        errors.append({"field": "amount_cents", "message": str(e)})

    try:
        installments = coerce_int(1 if installments is None else installments, "installments")
        if not 1 <= installments <= MAX_INSTALLMENTS:
            errors.append({"field": "installments", "message": f"installments must be between 1 and {MAX_INSTALLMENTS}"})
    except ValueError as e:
        errors.append({"field": "installments", "message": str(e)})

    if errors:
        raise ValidationError(errors)

    txn = PaymentTransaction(
        id=_new_transaction_id(),
        gateway=gateway,
        kind=kind,
        amount_cents=amount_cents,
        installments=installments,
        status="PENDING",
        message=f"Waiting for payment via {gateway}",
        employee_id=employee_id,
    )
    db.session.add(txn)
    db.session.commit()
    return txn


def get_payment(transaction_id: str) -> PaymentTransaction:
    return _get_transaction(transaction_id)


def process_payment(transaction_id: str) -> PaymentTransaction:
    """PENDING -> PROCESSING (the terminal picked the transaction up)."""
    def _op() -> PaymentTransaction:
        txn = _get_transaction(transaction_id, lock=True)
        if txn.status != "PENDING":
            raise ConflictError("Transaction is not pending", details={"status": txn.status})
        txn.status = "PROCESSING"
        txn.message = "Processing payment"
        db.session.commit()
        return txn

    return run_with_retry(_op)


def simulate_result(
    transaction_id: str,
    *,
    result: str,
    card_brand: str | None = None,
    decline_reason: str | None = None,
    gateway: PaymentGateway | None = None,
) -> PaymentTransaction:
    """Apply a gateway answer (APPROVED / DECLINED) to an unfinished transaction."""
    if result not in ("APPROVED", "DECLINED"):
        raise ValidationError([{"field": "result", "message": "result must be APPROVED or DECLINED"}])
    if card_brand is not None and card_brand not in CARD_BRANDS:
        raise ValidationError([{"field": "card_brand", "message": f"card_brand must be one of {', '.join(CARD_BRANDS)}"}])

    gateway = gateway or get_gateway()

    def _op() -> PaymentTransaction:
        txn = _get_transaction(transaction_id, lock=True)
        if txn.status not in ("PENDING", "PROCESSING"):
            raise ConflictError("Transaction was already processed", details={"status": txn.status})

        if result == "APPROVED":
            txn.status = "APPROVED"
            txn.authorization_code = gateway.authorization_code()
            txn.nsu = gateway.nsu()
            txn.card_brand = card_brand or gateway.card_brand()
            txn.message = "Transaction approved"
        else:
            txn.status = "DECLINED"
            txn.message = decline_reason or "Transaction declined by issuer"

        db.session.commit()
        current_app.logger.info("Payment %s %s (%s cents)", txn.id, txn.status, txn.amount_cents)
        return txn

    return run_with_retry(_op)


def cancel_payment(transaction_id: str) -> PaymentTransaction:
    def _op() -> PaymentTransaction:
        txn = _get_transaction(transaction_id, lock=True)
        if txn.status == "APPROVED":
            raise ConflictError("An approved transaction cannot be cancelled")
        txn.status = "CANCELLED"
        txn.message = "Transaction cancelled by the operator"
        db.session.commit()
        return txn

    return run_with_retry(_op)


def link_to_sale(transaction_id: str, sale_id) -> PaymentTransaction:
    """Attach an APPROVED transaction to the sale it paid for."""
    try:
        sale_id = coerce_int(sale_id, "sale_id")
    except ValueError as e:
        raise ValidationError([{"field": "sale_id", "message": str(e)}])

    def _op() -> PaymentTransaction:
        txn = _get_transaction(transaction_id, lock=True)
        if txn.status != "APPROVED":
            raise ConflictError("Only approved transactions can be linked to a sale")
        if not db.session.query(Sale.id).filter_by(id=sale_id).first():
            raise NotFoundError("Sale not found")
        txn.sale_id = sale_id
        db.session.commit()
        return txn

    return run_with_retry(_op)


def list_payments(*, status: str | None = None, gateway: str | None = None, limit: int | None = None) -> list[PaymentTransaction]:
    if status and status not in PAYMENT_STATUSES:
        raise ValidationError([{"field": "status", "message": f"status must be one of {', '.join(PAYMENT_STATUSES)}"}])
    query = db.session.query(PaymentTransaction)
    if status:
        query = query.filter(PaymentTransaction.status == status)
    if gateway:
        query = query.filter(PaymentTransaction.gateway == gateway)
    limit = max(1, min(limit or DEFAULT_LIST_LIMIT, 200))
    return (
        query
        .order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc())
        .limit(limit)
        .all()
    )
