# Overview: Transaction helpers for lock-sensitive service operations.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """Add FOR UPDATE to a lot query. SQLite drops the clause; see begin_immediate()."""
    return query.with_for_update()


def begin_immediate() -> None:
    """
    On SQLite, take the database write lock before reading lots so that
    concurrent writers serialize. No-op on other dialects and when the
    connection is already inside a transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.driver_connection
    if getattr(raw, "in_transaction", False):
        return
    db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func, retrying with exponential backoff when the database reports
    a lock timeout or deadlock (OperationalError) or a stale row version
    (StaleDataError). The last failure propagates.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt == attempts:
                raise
            time.sleep(backoff_base * 2 ** (attempt - 1))


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func inside one locked unit of work and commit it.

    Any exception rolls the whole unit back; transient lock errors are retried.
    """
    def _op():
        begin_immediate()
        try:
            result = func()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return result

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)

