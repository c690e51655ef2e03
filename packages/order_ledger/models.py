"""Data models and type aliases for ``order_ledger``.

Entities are frozen pydantic models: once an ``Order`` is part of a published
snapshot it is never mutated, only replaced (``model_copy(update=...)``).
Python attributes are snake_case; the camelCase aliases match the remote
sheet headers and the local cache JSON.
"""

from __future__ import annotations

import datetime as dt
import secrets
import time
from collections.abc import Callable
from decimal import Decimal
from enum import StrEnum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class OrderStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    READY = "ready"
    DELIVERED = "delivered"


# Categories offered by the expense form. ``Expense.category`` also accepts
# free text typed straight into the sheet.
EXPENSE_CATEGORIES: tuple[str, ...] = (
    "Ingredients",
    "Packaging",
    "Delivery",
    "Equipment",
    "Marketing",
    "Utilities",
    "Other",
)


def _none_if_blank(value: object) -> object:
    # Blank optional text is stored as None, which is how the sheet round-trips it.
    if isinstance(value, str) and not value.strip():
        return None
    return value


class _Entity(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    id: str = ""


class Order(_Entity):
    """A single cake order.

    ``grand_total`` is derived on every access; it is written to the sheet for
    readability but never read back.
    """

    customer_name: str
    customer_phone: str | None = None
    cake_type: str
    quantity: int = 1
    price: Decimal = Decimal(0)
    additional_charges: Decimal = Decimal(0)
    delivery_charge: Decimal = Decimal(0)
    other_details: str | None = None
    cake_image: str | None = None
    delivered_image: str | None = None
    has_delivery: bool = False
    delivery_address: str | None = None
    due_date: dt.date | None = None
    order_date: dt.date | None = None
    status: OrderStatus = OrderStatus.PENDING
    is_eggless: bool = False

    @field_validator(
        "customer_phone",
        "other_details",
        "delivery_address",
        "cake_image",
        "delivered_image",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: object) -> object:
        return _none_if_blank(v)

    @property
    def grand_total(self) -> Decimal:
        return self.price + self.additional_charges + self.delivery_charge


class Customer(_Entity):
    """A customer keyed by phone number; created by the order-add upsert."""

    name: str
    phone: str
    email: str | None = None
    first_order_date: dt.date | None = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_to_none(cls, v: object) -> object:
        return _none_if_blank(v)


class Expense(_Entity):
    description: str
    amount: Decimal = Decimal(0)
    date: dt.date | None = None
    category: str = ""


type Entity = Order | Customer | Expense

type Orders = tuple[Order, ...]
type Customers = tuple[Customer, ...]
type Expenses = tuple[Expense, ...]


class FetchedCollections(NamedTuple):
    """All three collections as returned by one confirmable remote read."""

    orders: Orders
    customers: Customers
    expenses: Expenses


# ---------------------------------------------------------------------------
# Identity generation
# ---------------------------------------------------------------------------

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(n: int) -> str:
    if n == 0:
        return "0"
    digits: list[str] = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def new_id(*, clock: Callable[[], float] = time.time) -> str:
    """Return a new entity identity: base-36 epoch millis + random suffix.

    The time prefix grows monotonically within one client; the random suffix
    makes same-millisecond collisions improbable. No central authority is
    consulted.
    """

    millis = int(clock() * 1000)
    return _to_base36(millis) + _to_base36(secrets.randbits(56)).rjust(11, "0")


__all__ = [
    "OrderStatus",
    "EXPENSE_CATEGORIES",
    "Order",
    "Customer",
    "Expense",
    "Entity",
    "Orders",
    "Customers",
    "Expenses",
    "FetchedCollections",
    "new_id",
]
