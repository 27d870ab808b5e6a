# Overview: Optimistic-concurrency retry helpers shared by every stock mutation.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The products.version_id compare-and-swap still guards SQLite.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation (including its commit) with retry on concurrency failures.

    Retries on OperationalError (database locked, deadlocks) and StaleDataError
    (a version_id compare-and-swap that matched no row because another writer
    got there first). Each retry starts from a rolled back session, so the
    operation re-reads current stock and re-validates before writing again.
    Any other exception rolls back and propagates unchanged.
    """
    if attempts is None:
        attempts = current_app.config.get("STOCK_RETRY_ATTEMPTS", 5)
    if backoff_base is None:
        backoff_base = current_app.config.get("STOCK_RETRY_BACKOFF", 0.05)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning(
                    "Giving up after %d attempts on concurrent update: %s", attempts, exc
                )
                raise
            current_app.logger.info("Concurrent update detected, retrying (attempt %d)", attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
