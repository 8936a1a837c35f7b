# Overview: Row locking and retry helpers shared by the write paths.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the version_id column on locked rows catches the lost update.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on_conflict: bool = False):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). With retry_on_conflict, an
    IntegrityError is retried too: used by upserts racing on a unique key,
    where the second attempt finds the row the other writer inserted.
    """
    retryable = (OperationalError, StaleDataError)
    if retry_on_conflict:
        retryable = retryable + (IntegrityError,)

    for attempt in range(attempts):
        try:
            return func()
        except retryable as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after %s (attempt %d/%d)", exc.__class__.__name__, attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))

