"""Aggregate queries over collection snapshots.

Everything here is a pure function of its inputs: nothing is cached and
nothing touches the store, the cache or the network. ``month`` follows the
calendar convention (1 = January). Records without the relevant date never
fall in any period.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from decimal import Decimal

from .models import Customer, Expense, Order, OrderStatus


def _check_period(year: int, month: int) -> None:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be within 1..12, got {month}")
    if year < 1:
        raise ValueError(f"year must be positive, got {year}")


def _in_month(d: dt.date | None, year: int, month: int) -> bool:
    return d is not None and d.year == year and d.month == month


def monthly_revenue(orders: Iterable[Order], year: int, month: int) -> Decimal:
    """Sum of grand totals of orders placed in the month."""

    _check_period(year, month)
    return sum(
        (o.grand_total for o in orders if _in_month(o.order_date, year, month)), Decimal(0)
    )


def monthly_orders_count(orders: Iterable[Order], year: int, month: int) -> int:
    _check_period(year, month)
    return sum(1 for o in orders if _in_month(o.order_date, year, month))


def monthly_eggless_count(orders: Iterable[Order], year: int, month: int) -> int:
    _check_period(year, month)
    return sum(1 for o in orders if o.is_eggless and _in_month(o.order_date, year, month))


def new_customers_count(customers: Iterable[Customer], year: int, month: int) -> int:
    """Customers whose first order falls in the month."""

    _check_period(year, month)
    return sum(1 for c in customers if _in_month(c.first_order_date, year, month))


def monthly_expenses(expenses: Iterable[Expense], year: int, month: int) -> Decimal:
    _check_period(year, month)
    return sum((e.amount for e in expenses if _in_month(e.date, year, month)), Decimal(0))


def upcoming_orders(
    orders: Iterable[Order], count: int = 3, *, today: dt.date
) -> tuple[Order, ...]:
    """Undelivered orders due today or later, soonest first, at most ``count``.

    Due dates compare at day granularity; ties keep collection order.
    """

    if count < 0:
        raise ValueError("count must be non-negative")
    due = [
        o
        for o in orders
        if o.due_date is not None and o.due_date >= today and o.status != OrderStatus.DELIVERED
    ]
    due.sort(key=lambda o: o.due_date)  # type: ignore[arg-type, return-value]
    return tuple(due[:count])


__all__ = [
    "monthly_revenue",
    "monthly_orders_count",
    "monthly_eggless_count",
    "new_customers_count",
    "monthly_expenses",
    "upcoming_orders",
]
