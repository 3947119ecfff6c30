# Overview: Service-layer helpers for concurrency; retry of rolled-back writes and in-flight commit guarding.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import CommitInProgress
from ..extensions import db


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (database locked) and StaleDataError.
    The session is rolled back before each retry, so a retried attempt
    starts from nothing written.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


class CheckoutGuard:
    """
    One commit in flight per session key.

    A single user action must map to a single commit call; a double-clicked
    pay button gets CommitInProgress instead of a second sale.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._in_flight: set = set()

    @contextmanager
    def hold(self, session_key):
        with self._lock:
            if session_key in self._in_flight:
                raise CommitInProgress(session_key)
            self._in_flight.add(session_key)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(session_key)

    def is_busy(self, session_key) -> bool:
        with self._lock:
            return session_key in self._in_flight
