"""Reactive, local-first store for orders, customers and expenses.

The store is the single source of truth inside the process. It publishes
whole-collection snapshots (tuples of frozen entities) through replay-latest
observables and mirrors every change to the remote sheet on a best-effort
basis.

Lifecycle
---------
``Loading`` starts at construction (``loading`` publishes ``True``).
:meth:`LedgerStore.initialize` seeds from the local cache, fetches the remote
sheet, reconciles orders against the cached copy (images are patched back in,
see :mod:`order_ledger.merge`), publishes and persists the result. Any
failure on that path leaves the cache contents (or empty collections) in
place; ``loading`` always ends ``False`` and nothing is raised.

Write path
----------
Every effective mutation, in this order and on the caller's thread:

1. replace the collection snapshot and publish it;
2. write the changed collections to the local cache (``CacheError`` is the
   only error a mutation raises);
3. spawn a detached push of all three collections.

A push failure is logged and dropped. The local state is never rolled back
because the remote mirror failed. ``update_*``/``delete_*`` on an unknown id
are silent no-ops: nothing is published, persisted or pushed.

Concurrency
-----------
Mutations and publications are serialized by a re-entrant lock, so two
mutations apply in call order and an observer that reads after a mutation
returns sees its result. Pushes run on a :class:`BackgroundDispatcher` and may
complete in any order. A slow startup fetch is not fenced against a
concurrent mutation; its snapshot can transiently overwrite that mutation
until the next push/fetch cycle.
"""

from __future__ import annotations

import datetime as dt
import threading
from collections.abc import Callable
from decimal import Decimal
from types import TracebackType

from . import analytics
from .background import BackgroundDispatcher
from .cache import LocalCache, load_all
from .codec import FLAG_ONLY, CollectionKind, ImageColumnPolicy
from .errors import CacheError, ConfigurationError, PushFailures, TransportError
from .logging_setup import get_logger
from .merge import reconcile
from .models import (
    Customer,
    Customers,
    Expense,
    Expenses,
    FetchedCollections,
    Order,
    Orders,
    new_id,
)
from .reactive import BehaviorSubject, Observable
from .transport import Transport, push_all

_logger = get_logger("order_ledger.store")


class LedgerStore:
    """The reactive store. Construct once at startup and inject it."""

    def __init__(
        self,
        *,
        cache: LocalCache,
        transport: Transport | None = None,
        images: ImageColumnPolicy = FLAG_ONLY,
        dispatcher: BackgroundDispatcher | None = None,
        today: Callable[[], dt.date] = dt.date.today,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        self._cache = cache
        self._transport = transport
        self._images = images
        self._owns_dispatcher = dispatcher is None
        self._dispatcher = dispatcher if dispatcher is not None else BackgroundDispatcher()
        self._today = today
        self._new_id = id_factory
        self._lock = threading.RLock()
        self._closed = False
        self._loaded_from_remote = False

        self._orders: BehaviorSubject[Orders] = BehaviorSubject((), name="orders")
        self._customers: BehaviorSubject[Customers] = BehaviorSubject((), name="customers")
        self._expenses: BehaviorSubject[Expenses] = BehaviorSubject((), name="expenses")
        self._loading: BehaviorSubject[bool] = BehaviorSubject(True, name="loading")

    # ------------------------------------------------------------------
    # Observables and snapshots
    # ------------------------------------------------------------------

    @property
    def orders(self) -> Observable[Orders]:
        return self._orders.as_observable()

    @property
    def customers(self) -> Observable[Customers]:
        return self._customers.as_observable()

    @property
    def expenses(self) -> Observable[Expenses]:
        return self._expenses.as_observable()

    @property
    def loading(self) -> Observable[bool]:
        return self._loading.as_observable()

    @property
    def is_ready(self) -> bool:
        return not self._loading.value

    @property
    def sync_enabled(self) -> bool:
        return self._transport is not None

    @property
    def loaded_from_remote(self) -> bool:
        """Whether startup replaced local state with the fetched sheet."""
        return self._loaded_from_remote

    @property
    def dispatcher(self) -> BackgroundDispatcher:
        return self._dispatcher

    def get_orders(self) -> Orders:
        return self._orders.value

    def get_order(self, order_id: str) -> Order | None:
        return next((o for o in self._orders.value if o.id == order_id), None)

    def get_customers(self) -> Customers:
        return self._customers.value

    def get_expenses(self) -> Expenses:
        return self._expenses.value

    def snapshot(self) -> FetchedCollections:
        with self._lock:
            return FetchedCollections(
                orders=self._orders.value,
                customers=self._customers.value,
                expenses=self._expenses.value,
            )

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Run the startup sequence; never raises."""

        try:
            self._initialize()
        except Exception:
            _logger.exception("store:initialize_failed; continuing with current state")
        finally:
            self._loading.publish(False)

    def start(self) -> None:
        """Run :meth:`initialize` as a detached task."""

        self._dispatcher.spawn(self.initialize, label="initialize")

    def _initialize(self) -> None:
        cached = load_all(self._cache)
        self._publish(cached)
        _logger.info(
            "store:seeded_from_cache orders=%d customers=%d expenses=%d",
            len(cached.orders),
            len(cached.customers),
            len(cached.expenses),
        )

        if self._transport is None:
            _logger.error("store:sync_disabled; remote sheet not configured, using local cache only")
            return

        try:
            fetched = self._transport.fetch_all()
        except TransportError as e:
            _logger.warning("store:fetch_failed; falling back to local cache: %s", e)
            return

        merged = FetchedCollections(
            orders=reconcile(fetched.orders, cached.orders),
            customers=fetched.customers,
            expenses=fetched.expenses,
        )
        with self._lock:
            self._publish(merged)
            self._persist(*CollectionKind)
            self._loaded_from_remote = True
        _logger.info(
            "store:loaded_from_remote orders=%d customers=%d expenses=%d",
            len(merged.orders),
            len(merged.customers),
            len(merged.expenses),
        )

    def _publish(self, collections: FetchedCollections) -> None:
        with self._lock:
            self._orders.publish(tuple(collections.orders))
            self._customers.publish(tuple(collections.customers))
            self._expenses.publish(tuple(collections.expenses))

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def add_order(self, order: Order) -> Order:
        """Store ``order`` under a fresh id and return the stored snapshot.

        Creates a customer when the order carries a phone number not yet
        known, before the push is spawned.
        """

        with self._lock:
            stored = order.model_copy(update={"id": self._new_id()})
            self._orders.publish((*self._orders.value, stored))
            changed = [CollectionKind.ORDERS]
            if self._upsert_customer(stored):
                changed.append(CollectionKind.CUSTOMERS)
            self._commit(*changed)
        return stored

    def update_order(self, order: Order) -> bool:
        """Replace the order with the same id; ``False`` (no-op) when absent."""

        with self._lock:
            replaced = _replace_by_id(self._orders.value, order)
            if replaced is None:
                _logger.debug("store:update_skipped collection=orders id=%s", order.id)
                return False
            self._orders.publish(replaced)
            self._commit(CollectionKind.ORDERS)
        return True

    def delete_order(self, order_id: str) -> bool:
        with self._lock:
            remaining = _remove_by_id(self._orders.value, order_id)
            if remaining is None:
                _logger.debug("store:delete_skipped collection=orders id=%s", order_id)
                return False
            self._orders.publish(remaining)
            self._commit(CollectionKind.ORDERS)
        return True

    def _upsert_customer(self, order: Order) -> bool:
        phone = order.customer_phone
        if not phone or not phone.strip():
            return False
        customers = self._customers.value
        if any(c.phone == phone for c in customers):
            return False
        customer = Customer(
            id=self._new_id(),
            name=order.customer_name,
            phone=phone,
            first_order_date=order.order_date,
        )
        self._customers.publish((*customers, customer))
        _logger.info("store:customer_created id=%s", customer.id)
        return True

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    def add_expense(self, expense: Expense) -> Expense:
        with self._lock:
            stored = expense.model_copy(update={"id": self._new_id()})
            self._expenses.publish((*self._expenses.value, stored))
            self._commit(CollectionKind.EXPENSES)
        return stored

    def update_expense(self, expense: Expense) -> bool:
        with self._lock:
            replaced = _replace_by_id(self._expenses.value, expense)
            if replaced is None:
                _logger.debug("store:update_skipped collection=expenses id=%s", expense.id)
                return False
            self._expenses.publish(replaced)
            self._commit(CollectionKind.EXPENSES)
        return True

    def delete_expense(self, expense_id: str) -> bool:
        with self._lock:
            remaining = _remove_by_id(self._expenses.value, expense_id)
            if remaining is None:
                _logger.debug("store:delete_skipped collection=expenses id=%s", expense_id)
                return False
            self._expenses.publish(remaining)
            self._commit(CollectionKind.EXPENSES)
        return True

    # ------------------------------------------------------------------
    # Persistence and sync
    # ------------------------------------------------------------------

    def _commit(self, *changed: CollectionKind) -> None:
        """Persist ``changed`` locally, then spawn the remote push.

        The push is spawned even when the cache write raises.
        """

        try:
            self._persist(*changed)
        finally:
            self._schedule_push()

    def _persist(self, *kinds: CollectionKind) -> None:
        subjects = {
            CollectionKind.ORDERS: self._orders,
            CollectionKind.CUSTOMERS: self._customers,
            CollectionKind.EXPENSES: self._expenses,
        }
        for kind in kinds:
            self._cache.write(kind, subjects[kind].value)

    def _schedule_push(self) -> None:
        if self._transport is None:
            _logger.debug("store:push_skipped; sync disabled")
            return
        snapshot = self.snapshot()
        self._dispatcher.spawn(self._push_quietly, snapshot, label="push_all")

    def _push_quietly(self, snapshot: FetchedCollections) -> None:
        try:
            self._push(snapshot)
        except PushFailures as eg:
            for exc in eg.exceptions:
                _logger.warning("store:push_failed; local state kept: %s", exc)
        except Exception:
            _logger.exception("store:push_failed; local state kept")

    def _push(self, snapshot: FetchedCollections) -> None:
        if self._transport is None:
            raise ConfigurationError("remote sheet sync is not configured")
        push_all(
            self._transport,
            snapshot.orders,
            snapshot.customers,
            snapshot.expenses,
            images=self._images,
        )

    def sync_now(self) -> None:
        """Push the current snapshot synchronously and report the outcome.

        Raises ``ConfigurationError`` when sync is disabled and
        ``PushFailures`` when a sheet push could not be dispatched. Success
        still only means "dispatched".
        """

        self._push(self.snapshot())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def monthly_revenue(self, year: int, month: int) -> Decimal:
        return analytics.monthly_revenue(self.get_orders(), year, month)

    def monthly_orders_count(self, year: int, month: int) -> int:
        return analytics.monthly_orders_count(self.get_orders(), year, month)

    def monthly_eggless_count(self, year: int, month: int) -> int:
        return analytics.monthly_eggless_count(self.get_orders(), year, month)

    def new_customers_count(self, year: int, month: int) -> int:
        return analytics.new_customers_count(self.get_customers(), year, month)

    def monthly_expenses(self, year: int, month: int) -> Decimal:
        return analytics.monthly_expenses(self.get_expenses(), year, month)

    def upcoming_orders(self, count: int = 3) -> Orders:
        return analytics.upcoming_orders(self.get_orders(), count, today=self._today())

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def close(self, *, timeout: float | None = 30.0) -> None:
        """Wait for pending pushes, flush the cache and stop owned workers.

        A failed flush is logged, not raised.
        """

        if self._closed:
            return
        self._closed = True
        if not self._dispatcher.drain(timeout):
            _logger.warning("store:close_timeout; %d background task(s) abandoned", self._dispatcher.pending)
        try:
            with self._lock:
                self._persist(*CollectionKind)
        except CacheError as e:
            _logger.error("store:flush_failed %s", e)
        if self._owns_dispatcher:
            self._dispatcher.shutdown(wait=False)

    def __enter__(self) -> LedgerStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def _replace_by_id[E: (Order, Expense)](items: tuple[E, ...], entity: E) -> tuple[E, ...] | None:
    for idx, current in enumerate(items):
        if current.id == entity.id:
            return (*items[:idx], entity, *items[idx + 1 :])
    return None


def _remove_by_id[E: (Order, Expense)](items: tuple[E, ...], entity_id: str) -> tuple[E, ...] | None:
    remaining = tuple(e for e in items if e.id != entity_id)
    return remaining if len(remaining) != len(items) else None


__all__ = ["LedgerStore"]
