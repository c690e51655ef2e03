"""Public interface for the ``order_ledger`` package.

This module exposes the store, the entity models and the error types as the
stable import surface. There is no runtime logic here, only symbol
re-exports.
"""

from .errors import CacheError, ConfigurationError, LedgerError, PushFailures, TransportError
from .models import (
    EXPENSE_CATEGORIES,
    Customer,
    Customers,
    Expense,
    Expenses,
    FetchedCollections,
    Order,
    Orders,
    OrderStatus,
    new_id,
)
from .store import LedgerStore

__all__ = [
    # Store
    "LedgerStore",
    # Models
    "Order",
    "Orders",
    "OrderStatus",
    "Customer",
    "Customers",
    "Expense",
    "Expenses",
    "EXPENSE_CATEGORIES",
    "FetchedCollections",
    "new_id",
    # Errors
    "LedgerError",
    "ConfigurationError",
    "TransportError",
    "CacheError",
    "PushFailures",
]
