from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class CashSession(db.Model):
    """
    Cash drawer session (caixa) for one employee.

    LIFECYCLE:
    - OPEN: shift in progress, at most one per employee
    - CLOSED: drawer counted; expected and discrepancy frozen at close time

    IMMUTABLE: once closed, a session cannot be reopened or modified.
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index("ix_cash_sessions_employee_status", "employee_id", "status"),
        # At most one OPEN session per employee, enforced by the database
        db.Index(
            "uq_cash_sessions_open_employee",
            "employee_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN")  # OPEN, CLOSED

    # Cash tracking (all amounts in cents)
    opening_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_cents = db.Column(db.Integer, nullable=True)

    # Calculated when closing
    expected_cents = db.Column(db.Integer, nullable=True)  # opening + cash sales
    discrepancy_cents = db.Column(db.Integer, nullable=True)  # closing - expected

    opened_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    closed_at = db.Column(db.DateTime, nullable=True)

    opening_note = db.Column(db.Text, nullable=True)
    closing_note = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    employee = db.relationship("Employee", backref=db.backref("cash_sessions", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "employee_name": self.employee.name if self.employee else None,
            "status": self.status,
            "opening_cents": self.opening_cents,
            "closing_cents": self.closing_cents,
            "expected_cents": self.expected_cents,
            "discrepancy_cents": self.discrepancy_cents,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "opening_note": self.opening_note,
            "closing_note": self.closing_note,
            "version_id": self.version_id,
        }
