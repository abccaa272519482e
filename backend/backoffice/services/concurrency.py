# Overview: Locking, retry and atomic-counter helpers shared by the ledger services.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.orm.util import identity_key
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def increment_columns(model, row_id: int, **deltas: int) -> int:
    """
    Atomically add deltas to integer columns of one row.

    Issues a single `UPDATE ... SET col = col + :delta WHERE id = :id` so the
    new value is computed by the database, never from a snapshot held in
    Python. Expires the affected attributes on any loaded instance so the
    next read sees the committed value. Returns the matched row count.
    """
    values = {name: getattr(model, name) + delta for name, delta in deltas.items()}
    result = db.session.execute(
        update(model)
        .where(model.id == row_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    instance = db.session.identity_map.get(identity_key(model, row_id))
    if instance is not None:
        db.session.expire(instance, list(deltas.keys()))
    return result.rowcount


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
