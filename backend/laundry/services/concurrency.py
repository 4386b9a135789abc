# Overview: Row locking and caller-side retry helpers.

from __future__ import annotations

import time

from .errors import ConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; outermost units there take
    the database write lock up front (see transaction.unit_of_work).
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 2, backoff_base: float = 0.05):
    """
    Execute an operation, retrying on ConflictError.

    Used by HTTP handlers only. Services surface ConflictError as-is, the
    caller decides whether a fresh attempt makes sense. Default is one retry.
    """
    for attempt in range(attempts):
        try:
            return func()
        except ConflictError:
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
