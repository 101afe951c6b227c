from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class ProductImport(db.Model):
    """
    Summary of one CSV product import run.

    Rows are posted one by one; rejected rows are kept in error_detail as
    {"line": n, "message": "..."} so the operator can fix the file.

    STATUS:
    - COMPLETED: every row imported
    - PARTIAL: some rows rejected
    - FAILED: nothing imported
    """
    __tablename__ = "product_imports"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    file_name = db.Column(db.String(255), nullable=True)
    total_rows = db.Column(db.Integer, nullable=False, default=0)
    success_count = db.Column(db.Integer, nullable=False, default=0)
    error_count = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False)

    # JSON list of {"line", "message"}
    error_detail = db.Column(db.Text, nullable=True)

    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    employee = db.relationship("Employee")

    @property
    def errors(self) -> list[dict]:
        return json.loads(self.error_detail) if self.error_detail else []

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "file_name": self.file_name,
            "total_rows": self.total_rows,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "status": self.status,
            "errors": self.errors,
            "employee_id": self.employee_id,
            "employee_name": self.employee.name if self.employee else None,
            "created_at": to_utc_z(self.created_at),
        }
