# Overview: Service-layer helpers for locking, retries and guarded writes.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.orm.util import identity_key

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The guarded updates below are what actually protect the invariants.
    """
    return query.with_for_update()


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


def run_atomic(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run ``func`` as one unit of work: commit when it returns, roll back when
    it raises anything. Lock and stale-data failures are retried from the top.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return result
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)


def guarded_update(model, row_id: int, values: dict, *conditions) -> bool:
    """
    Compare-and-set UPDATE of a single row.

    Applies ``values`` only if the row still satisfies every condition at
    write time. Returns True when exactly one row changed. A loaded instance
    of the row has the written attributes expired so the next access reads
    the committed value.
    """
    stmt = (
        update(model)
        .where(model.id == row_id, *conditions)
        .values(values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    instance = db.session.identity_map.get(identity_key(model, row_id))
    if instance is not None:
        db.session.expire(instance, list(values))
    return result.rowcount == 1
