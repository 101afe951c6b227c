from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class SyncQueueEntry(db.Model):
    """
    Write performed while the desktop install runs offline.

    Entries are replayed against the central server by an external agent,
    which acknowledges (SYNCED) or reports a failed attempt.
    """
    __tablename__ = "sync_queue"
    __table_args__ = (
        db.Index("ix_sync_queue_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    method = db.Column(db.String(8), nullable=False)
    path = db.Column(db.String(255), nullable=False)
    # JSON request body (may be null for bodiless requests)
    payload = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING, SYNCED
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    synced_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "method": self.method,
            "path": self.path,
            "payload": json.loads(self.payload) if self.payload else None,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "synced_at": to_utc_z(self.synced_at),
        }
