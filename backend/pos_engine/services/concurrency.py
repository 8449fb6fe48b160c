# Overview: Service-layer helpers for row locking and retried atomic units of work.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PersistenceFailure
from ..extensions import db


# Lock waits, deadlocks and optimistic version conflicts.
RETRYABLE_ERRORS = (OperationalError, StaleDataError)

# Writers that lazily provision rows (stock levels, points balances) may
# lose a race to insert the same unique row; the retry then finds it there.
STOCK_RETRYABLE_ERRORS = RETRYABLE_ERRORS + (IntegrityError,)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Contended rows also carry a version_id column, so a lost race on SQLite
    surfaces as StaleDataError and is retried by run_atomic().
    """
    return query.with_for_update()


def _retry_settings(attempts, backoff_base):
    if attempts is None:
        attempts = current_app.config.get("DB_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("DB_RETRY_BACKOFF", 0.1)
    return max(1, int(attempts)), float(backoff_base)


def run_with_retry(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    retry_on: tuple = RETRYABLE_ERRORS,
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) by default. When every attempt fails the
    last error is re-raised as PersistenceFailure.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceFailure(
                    "Storage conflict, please retry",
                    details={"reason": exc.__class__.__name__},
                ) from exc
            current_app.logger.warning(
                "Retrying after %s (attempt %d/%d)",
                exc.__class__.__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))


def run_atomic(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    retry_on: tuple = RETRYABLE_ERRORS,
):
    """
    Run func as one unit of work: commit on success, roll back on any error.

    Nothing func wrote is visible unless the commit succeeds. Conflicts in
    retry_on are retried from scratch; business errors are re-raised untouched.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except retry_on:
            raise
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base, retry_on=retry_on)
