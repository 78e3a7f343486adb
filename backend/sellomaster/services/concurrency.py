# Overview: Row locking and retry of whole units of work against the store.

"""
Concurrent writers are detected, not prevented:

- Seal.version_id makes a flush fail with StaleDataError when another
  writer changed the same seal since it was loaded.
- SQLite (and busy servers) raise OperationalError on lock timeouts.

Either way the session is rolled back and the unit of work runs again from
the start, reloading its rows. Movements sent with an explicit date replay
as no-ops, so at-least-once execution is safe.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError)

T = TypeVar("T")


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the rows a batch movement is about to change.

    NOTE: SQLite ignores the clause; version_id still catches conflicts there.
    """
    return query.with_for_update()


def commit_with_retry(work: Callable[[], T], *, attempts: int = 3, backoff_base: float = 0.1) -> T:
    """
    Run work() and commit, retrying both on concurrency failures.

    work must do all of its reads itself (nothing loaded before the call
    survives a rollback). Domain errors raised by work propagate on the
    first attempt with the session untouched, so the caller rolls back.
    """
    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.session.commit()
            return result
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                logger.error("Giving up after %d attempts: %s", attempts, type(exc).__name__)
                raise
            delay = backoff_base * (2 ** (attempt - 1))
            logger.warning("%s on attempt %d/%d, retrying in %.2fs", type(exc).__name__, attempt, attempts, delay)
            time.sleep(delay)
