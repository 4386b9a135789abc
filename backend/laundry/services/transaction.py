# Overview: Transaction coordinator; runs a group of writes as one all-or-nothing unit.

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Callable

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import OrderEngineError, ConflictError, TransactionAbortError, ValidationError

"""
Unit of work invariants (authoritative)

- One outermost unit == one database transaction. Nested unit_of_work()
  calls join the outer unit; only the outermost commits or rolls back.
- Any exception leaves every entity exactly as it was before the unit began.
- Domain errors (OrderEngineError) propagate unchanged after rollback.
- Optimistic-lock or uniqueness failures become ConflictError; other
  constraint violations (NOT NULL, CHECK, foreign key) become ValidationError.
- Every other database failure, and exceeding the time budget, becomes
  TransactionAbortError.
- Callbacks registered with after_commit() run only after a successful commit.
"""

_UNIT_KEY = "laundry.unit_of_work"
_AFTER_COMMIT_KEY = "laundry.after_commit"


def in_unit_of_work() -> bool:
    return bool(db.session.info.get(_UNIT_KEY))


def require_unit_of_work(operation: str) -> None:
    if not in_unit_of_work():
        raise RuntimeError(f"{operation} must be called inside unit_of_work()")


def after_commit(callback: Callable[[], None]) -> None:
    """Defer callback until the enclosing unit commits; run now if there is none."""
    callbacks = db.session.info.get(_AFTER_COMMIT_KEY)
    if callbacks is None:
        callback()
        return
    callbacks.append(callback)


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    if getattr(orig, "pgcode", None) == "23505" or getattr(orig, "sqlstate", None) == "23505":
        return True
    message = str(orig).lower()
    return "unique" in message or "duplicate key" in message


def _begin(session, timeout: float) -> None:
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        # Take the write lock up front so concurrent units serialize
        raw = session.connection().connection
        dbapi_conn = getattr(raw, "dbapi_connection", raw)
        if not dbapi_conn.in_transaction:
            session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        session.execute(text(f"SET LOCAL statement_timeout = {int(timeout * 1000)}"))


@contextmanager
def unit_of_work(name: str = "unit_of_work", *, timeout: float | None = None):
    """
    Run the enclosed writes as a single atomic unit.

    Usage:
        with unit_of_work("order.create"):
            ...
    """
    session = db.session
    if session.info.get(_UNIT_KEY):
        yield session
        return

    if timeout is None:
        timeout = float(current_app.config["UNIT_OF_WORK_TIMEOUT_SECONDS"])

    callbacks: list[Callable[[], None]] = []
    session.info[_UNIT_KEY] = name
    session.info[_AFTER_COMMIT_KEY] = callbacks
    started = time.monotonic()
    try:
        try:
            _begin(session, timeout)
            yield session
            session.flush()
            elapsed = time.monotonic() - started
            if elapsed > timeout:
                raise TransactionAbortError(
                    f"{name} exceeded its time budget",
                    details={"elapsed_seconds": round(elapsed, 3), "timeout_seconds": timeout},
                )
            session.commit()
        except OrderEngineError as exc:
            session.rollback()
            current_app.logger.info("%s rolled back: %s", name, exc.message)
            raise
        except StaleDataError as exc:
            session.rollback()
            current_app.logger.warning("%s conflict: %s", name, exc)
            raise ConflictError(
                "Record was modified concurrently; reload and try again",
                details={"unit": name},
            ) from exc
        except IntegrityError as exc:
            session.rollback()
            if not _is_unique_violation(exc):
                current_app.logger.warning("%s constraint violation: %s", name, exc.orig)
                raise ValidationError(
                    "Write violates a data constraint",
                    details={"unit": name},
                ) from exc
            current_app.logger.warning("%s integrity conflict: %s", name, exc.orig)
            raise ConflictError(
                "Write conflicts with existing data",
                details={"unit": name},
            ) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            current_app.logger.error("%s aborted: %s", name, exc)
            raise TransactionAbortError(
                f"{name} aborted by the database",
                details={"unit": name},
            ) from exc
        except BaseException:
            session.rollback()
            raise
    finally:
        session.info.pop(_UNIT_KEY, None)
        session.info.pop(_AFTER_COMMIT_KEY, None)

    for callback in callbacks:
        callback()
