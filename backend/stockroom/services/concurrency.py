# Overview: Service-layer helpers for atomic, write-serialised units of work.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConstraintViolationError, TransactionConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Open the current transaction in write-serialised mode.

    SQLite only has database-level locks, so take the RESERVED lock up front
    (BEGIN IMMEDIATE); a second writer blocks here until the first commits
    and then reads the committed values. Other databases rely on
    lock_for_update() row locks taken by the caller.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    retry_on_integrity: bool = False,
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). IntegrityError is retried only when
    retry_on_integrity is set (sequence races); otherwise it surfaces at
    once as ConstraintViolationError. Exhausted retries surface as
    TransactionConflictError / ConstraintViolationError.
    """
    if attempts is None:
        attempts = current_app.config.get("TX_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TX_RETRY_BACKOFF_SECONDS", 0.1)

    last_exc = None
    error_cls = TransactionConflictError
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            error_cls = TransactionConflictError
        except IntegrityError as exc:
            db.session.rollback()
            if not retry_on_integrity:
                raise ConstraintViolationError(
                    "Uniqueness constraint violated",
                    details={"constraint": str(exc.orig)},
                    retryable=False,
                ) from exc
            last_exc = exc
            error_cls = ConstraintViolationError

        if attempt < attempts - 1:
            current_app.logger.warning(
                "Retrying transaction after %s (attempt %d/%d)",
                type(last_exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))

    raise error_cls(
        "Transaction could not be committed; retry the request",
        details={"attempts": attempts, "cause": type(last_exc).__name__},
    ) from last_exc


def run_atomic(func, *, retry_on_integrity: bool = False, attempts: int | None = None):
    """
    Run func() as one atomic unit: begin write-serialised, commit on
    success, roll back on any exception. Nothing func() wrote is visible
    unless all of it is.
    """
    def _op():
        begin_write()
        try:
            result = func()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return result

    return run_with_retry(_op, attempts=attempts, retry_on_integrity=retry_on_integrity)
