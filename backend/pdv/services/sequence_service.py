# Overview: Service-layer allocation of monotonic document numbers (sale, tab, return).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import SequenceCounter


SEQUENCE_NAMES = ("sale", "tab", "return")


class SequenceError(Exception):
    """Raised when a sequence name is not recognised."""
    pass


def _increment(name: str) -> int | None:
    stmt = (
        update(SequenceCounter)
        .where(SequenceCounter.name == name)
        .values(next_value=SequenceCounter.next_value + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(SequenceCounter.next_value)
        .filter_by(name=name)
        .scalar()
    )
    return current - 1


def next_sequence(name: str) -> int:
    """
    Allocate the next number of a named sequence.

    Runs inside the caller's transaction: the number is only consumed if the
    caller commits, and two concurrent callers serialize on the counter row.
    The first allocation creates the row; a concurrent first insert losing
    the unique-name race falls back to the UPDATE path.
    """
    if name not in SEQUENCE_NAMES:
        raise SequenceError(f"Unknown sequence: {name}")

    value = _increment(name)
    if value is not None:
        return value

    try:
        with db.session.begin_nested():
            db.session.add(SequenceCounter(name=name, next_value=2))
        return 1
    except IntegrityError:
        value = _increment(name)
        if value is None:
            raise
        return value


def peek_sequence(name: str) -> int:
    """Next value that would be allocated, without consuming it."""
    current = (
        db.session.query(SequenceCounter.next_value)
        .filter_by(name=name)
        .scalar()
    )
    return current or 1
