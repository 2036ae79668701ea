"""
Scoped transactions for the reservation engine.

A TransactionManager is the persistence handle handed to the coordinator,
the queues and the seat inventory. Every mutation of a (train, route) scope
runs inside TransactionManager.scope(), which

* serialises work on the same scope inside this process,
* opens a database transaction that rolls back on any exception,
* row-locks the Route so other processes queue up behind it
  (a no-op on SQLite, which locks the whole database on write).

Unrelated scopes never wait on each other.
"""
import logging
import threading
import time
from contextlib import contextmanager

from django.conf import settings
from django.db import transaction, DatabaseError, OperationalError

from trains.models import Route
from utils.exceptions import ConcurrencyConflict, InvalidInput, PersistenceFailure

logger = logging.getLogger('reservations')


def get_engine_setting(name):
    return settings.RESERVATION_ENGINE[name]


class ScopeLocks:
    """Registry of one re-entrant lock per (train_id, route_id)."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    def get(self, train_id, route_id):
        key = (int(train_id), int(route_id))
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock


# Shared by every TransactionManager in the process so that two coordinator
# instances serving different requests still exclude each other.
SCOPE_LOCKS = ScopeLocks()


class TransactionManager:

    def __init__(self, using='default', locks=None):
        self.using = using
        self.locks = locks if locks is not None else SCOPE_LOCKS

    @contextmanager
    def scope(self, train_id, route_id):
        """
        Open one atomic unit over a scope and yield its locked Route.

        Database errors are translated: OperationalError (lock timeout,
        deadlock, "database is locked") becomes ConcurrencyConflict, any
        other DatabaseError becomes PersistenceFailure. Both are raised
        after the transaction has been rolled back.
        """
        with self.locks.get(train_id, route_id):
            try:
                with transaction.atomic(using=self.using):
                    route = (
                        Route.objects.using(self.using)
                        .select_for_update()
                        .filter(id=route_id, train_id=train_id)
                        .first()
                    )
                    if route is None:
                        raise InvalidInput(f"Route {route_id} does not belong to train {train_id}.")
                    yield route
            except OperationalError as exc:
                raise ConcurrencyConflict() from exc
            except DatabaseError as exc:
                logger.exception("Scope transaction aborted for train=%s route=%s", train_id, route_id)
                raise PersistenceFailure() from exc

    def run(self, train_id, route_id, fn, *args, **kwargs):
        """
        Call fn(route, *args, **kwargs) inside scope(), retrying the whole
        unit on ConcurrencyConflict.
        """
        def unit():
            with self.scope(train_id, route_id) as route:
                return fn(route, *args, **kwargs)
        return self.retrying(unit)

    def retrying(self, fn, *args, **kwargs):
        """
        Call fn, retrying up to MAX_TRANSACTION_RETRIES times with linear
        backoff when it hits lock contention. Also used for the unlocked
        lookups that decide which scope to lock.
        """
        retries = get_engine_setting('MAX_TRANSACTION_RETRIES')
        backoff = get_engine_setting('RETRY_BACKOFF_SECONDS')
        attempt = 0
        while True:
            try:
                return fn(*args, **kwargs)
            except (ConcurrencyConflict, OperationalError) as exc:
                attempt += 1
                if attempt > retries:
                    logger.error("Giving up after %d attempts: %s", attempt, exc)
                    if isinstance(exc, OperationalError):
                        raise ConcurrencyConflict() from exc
                    raise
                logger.warning("Concurrency conflict, retry %d/%d", attempt, retries)
                time.sleep(backoff * attempt)

    def on_commit(self, func):
        """Run func after the outermost atomic block commits; its errors are logged, never raised."""
        transaction.on_commit(func, using=self.using, robust=True)
