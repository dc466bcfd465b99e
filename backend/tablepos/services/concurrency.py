# Overview: Transaction helpers shared by every service that mutates orders, payments or stock.

from __future__ import annotations

import time

from flask import current_app, has_app_context
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TablePosError, InternalError, TransactionTimeout
from ..extensions import db


# SQLSTATE raised by PostgreSQL when statement_timeout fires
_PG_QUERY_CANCELED = "57014"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    Rows already in the session's identity map are refreshed from the
    locked read, so callers never decide on stale attributes.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update().populate_existing()


def begin_write() -> None:
    """
    Open the current transaction as a write transaction.

    On SQLite the driver only starts a transaction at the first DML statement,
    so reads that precede the write would not be isolated. BEGIN IMMEDIATE
    takes the database write lock up front, which serializes the whole
    read-then-write sequence. Other dialects rely on lock_for_update().
    """
    conn = db.session.connection()
    if conn.dialect.name != "sqlite":
        return
    if conn.connection.dbapi_connection.in_transaction:
        return
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def _default_timeout() -> float | None:
    if not has_app_context():
        return None
    value = current_app.config.get("TRANSACTION_TIMEOUT_SECONDS")
    return float(value) if value else None


def _apply_statement_timeout(remaining: float) -> None:
    conn = db.session.connection()
    if conn.dialect.name != "postgresql":
        return
    ms = max(1, int(remaining * 1000))
    db.session.execute(text(f"SET LOCAL statement_timeout = {ms}"))


def _is_statement_timeout(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code == _PG_QUERY_CANCELED


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    timeout: float | None = None,
    operation: str = "transaction",
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    - OperationalError (deadlocks, locks) and StaleDataError (optimistic
      version conflicts) are retried with exponential backoff.
    - TablePosError (business rule failures) rolls back and propagates as-is.
    - Anything else rolls back, is logged, and surfaces as InternalError.
    - timeout bounds the whole call; it is handed to the driver as a
      statement timeout where supported. Elapsing raises TransactionTimeout.

    The session is rolled back on every failure path, so no partial write
    survives a failed attempt.
    """
    if timeout is None:
        timeout = _default_timeout()
    deadline = time.monotonic() + timeout if timeout else None

    for attempt in range(attempts):
        try:
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TransactionTimeout()
                _apply_statement_timeout(remaining)
            return func()
        except TablePosError:
            db.session.rollback()
            raise
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if isinstance(exc, OperationalError) and _is_statement_timeout(exc):
                raise TransactionTimeout() from exc
            if attempt >= attempts - 1:
                current_app.logger.exception("%s failed after %d attempts", operation, attempts)
                raise InternalError() from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception("%s failed", operation)
            raise InternalError() from exc
