# Overview: Transaction, locking and retry helpers for settlement writes.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from .errors import ConcurrencyConflict

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Quantity columns do not rely on this lock; they are written with
    condition-checked UPDATE statements.
    """
    return query.with_for_update()


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute one settlement transaction with retry on concurrency failures.

    func performs all of its writes on `session` and commits. Any exception
    rolls the whole transaction back, so no partial settlement is ever left
    behind. OperationalError (locks, deadlocks) and StaleDataError (optimistic
    version conflicts) are retried with exponential backoff; when retries run
    out the caller gets a retryable ConcurrencyConflict.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            logger.warning("Settlement write conflict (attempt %s/%s): %s", attempt + 1, attempts, exc)
            if attempt >= attempts - 1:
                raise ConcurrencyConflict(
                    "Concurrent update detected, please retry",
                    details={"attempts": attempts},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            session.rollback()
            raise
