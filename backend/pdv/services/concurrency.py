# Overview: Concurrency helpers shared by services: row locks and retry on transient DB conflicts.

from __future__ import annotations

import time
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Product


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def lock_products(product_ids: Iterable[int]) -> dict[int, Product]:
    """
    Lock every distinct product once, in ascending id order.

    Sales, tab closes, returns and cancellations all take their product
    locks through here, so two of them sharing products always lock in the
    same order. Unknown ids are simply absent from the result.
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    query = db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id.asc())
    return {product.id: product for product in lock_for_update(query).all()}


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a whole unit of work with retry on concurrency-related failures.

    func must be re-runnable from scratch: on OperationalError (deadlocks,
    locks) or StaleDataError (optimistic version mismatch) the session is
    rolled back and func is called again. Domain errors propagate untouched.

    Defaults come from DB_RETRY_ATTEMPTS and DB_RETRY_BACKOFF_SECONDS.
    """
    if attempts is None:
        attempts = current_app.config.get("DB_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("DB_RETRY_BACKOFF_SECONDS", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.error(
                    "Giving up after %s attempts: %s", attempts, exc.__class__.__name__,
                )
                raise
            current_app.logger.warning(
                "Retrying after concurrency conflict (attempt %s/%s): %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
