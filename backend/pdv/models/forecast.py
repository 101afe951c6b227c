from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class SeasonalityFactor(db.Model):
    """
    Demand multiplier for one category in one calendar month.

    A missing row means 1.0 (no seasonal effect).
    """
    __tablename__ = "seasonality_factors"
    __table_args__ = (
        db.UniqueConstraint("category", "month", name="uq_seasonality_category_month"),
        db.CheckConstraint("month BETWEEN 1 AND 12", name="ck_seasonality_month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category = db.Column(db.String(64), nullable=False)
    month = db.Column(db.Integer, nullable=False)
    factor = db.Column(db.Float, nullable=False, default=1.0)
    note = db.Column(db.String(255), nullable=True)

    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "month": self.month,
            "factor": self.factor,
            "note": self.note,
            "updated_at": to_utc_z(self.updated_at),
        }

