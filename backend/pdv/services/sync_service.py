# Overview: Service-layer operations for the offline write queue.

"""
Offline sync queue

When the desktop install runs with OFFLINE_MODE, every successful write
request is appended here in arrival order. Replaying the queue against the
central server is done by an external agent, which calls acknowledge() or
record_failure() for each entry.
"""

from __future__ import annotations

import json

from ..extensions import db
from ..errors import ConflictError, NotFoundError
from ..models import SyncQueueEntry
from ..time_utils import utcnow


MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def enqueue(*, method: str, path: str, payload) -> SyncQueueEntry:
    entry = SyncQueueEntry(
        method=method.upper(),
        path=path,
        payload=json.dumps(payload) if payload is not None else None,
        status="PENDING",
        attempts=0,
    )
    db.session.add(entry)
    db.session.commit()
    return entry


def list_pending(limit: int | None = None) -> list[SyncQueueEntry]:
    """PENDING entries, oldest first (replay order)."""
    query = (
        db.session.query(SyncQueueEntry)
        .filter(SyncQueueEntry.status == "PENDING")
        .order_by(SyncQueueEntry.id.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def pending_count() -> int:
    return db.session.query(SyncQueueEntry.id).filter(SyncQueueEntry.status == "PENDING").count()


def _get_entry(entry_id: int) -> SyncQueueEntry:
    entry = db.session.query(SyncQueueEntry).filter_by(id=entry_id).first()
    if not entry:
        raise NotFoundError("Sync entry not found")
    return entry


def acknowledge(entry_id: int) -> SyncQueueEntry:
    entry = _get_entry(entry_id)
    if entry.status == "SYNCED":
        raise ConflictError("Sync entry already acknowledged")
    entry.status = "SYNCED"
    entry.synced_at = utcnow()
    entry.attempts += 1
    entry.last_error = None
    db.session.commit()
    return entry


def record_failure(entry_id: int, error: str | None) -> SyncQueueEntry:
    """Count a failed replay attempt; the entry stays PENDING."""
    entry = _get_entry(entry_id)
    if entry.status == "SYNCED":
        raise ConflictError("Sync entry already acknowledged")
    entry.attempts += 1
    entry.last_error = (error or "unknown error")[:2000]
    db.session.commit()
    return entry
