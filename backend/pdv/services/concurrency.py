# Overview: Locking, bounded retry and atomic commit helpers shared by the write services.

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import CompensationFailed, ConcurrencyConflict
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the whole database is
    write-locked by begin_immediate() instead.
    """
    return query.with_for_update()


def begin_immediate() -> None:
    """
    On SQLite, take the database write lock before the first read.

    pysqlite defers BEGIN until the first write, so two transactions could
    both read the same sequence/stock/credit value. No-op on other dialects
    and when the connection is already inside a transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    dbapi_conn = db.session.connection().connection.dbapi_connection
    if not dbapi_conn.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, busy database) and StaleDataError
    (optimistic locking conflicts) with exponential backoff. When the budget
    is exhausted the failure surfaces as ConcurrencyConflict.
    """
    if attempts is None:
        attempts = current_app.config.get("RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("RETRY_BACKOFF_BASE", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning(
                    "retry_exhausted",
                    extra={"event": "retry_exhausted", "attempts": attempts, "error": str(exc)},
                )
                raise ConcurrencyConflict(
                    "Operation could not complete due to concurrent updates; try again",
                    {"attempts": attempts},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
    raise ConcurrencyConflict("Operation was not attempted", {"attempts": attempts})


def rollback_or_escalate(operation: str, **context) -> None:
    """
    Roll back the session after a failed write.

    If the rollback itself fails the store may hold a partial effect: log
    CRITICAL with the operation context and raise CompensationFailed.
    """
    try:
        db.session.rollback()
    except Exception as exc:
        logger.critical(
            "rollback_failed",
            extra={"event": "rollback_failed", "operation": operation, "context": context},
            exc_info=True,
        )
        raise CompensationFailed(
            f"Rollback of {operation} failed; manual reconciliation required",
            {"operation": operation, **context},
        ) from exc


@contextmanager
def atomic(operation: str, **context):
    """
    Commit everything done in the block as one transaction, or nothing.

    Usage:
        with atomic("finalize_sale", store_id=1):
            ...writes...
    """
    try:
        yield
        db.session.commit()
    except Exception:
        rollback_or_escalate(operation, **context)
        raise
