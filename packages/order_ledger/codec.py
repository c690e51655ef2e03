"""Row codec: entities to and from the flat text rows of the remote sheets.

Contract
--------
- Encoding emits cells in a fixed column order per collection (see
  ``ORDER_HEADERS``/``CUSTOMER_HEADERS``/``EXPENSE_HEADERS``). The layout is
  at version 2 (``grandTotal`` and ``deliveredImage`` added); existing sheets
  only keep decoding across a change because decoding is header-driven.
- Decoding is header-driven: every cell is dispatched by the header name at
  its column index, so reordered columns and unknown extra columns (ignored)
  do not matter. Legacy header names resolve through ``HEADER_ALIASES``.
- A row whose identity or primary required text is missing decodes to
  ``None``; so does a row that raises while being parsed. Malformed rows never
  fail the batch.
- Numbers are lenient: invalid, absent or non-finite text becomes ``0``
  (``1`` for quantity), and so do exponents beyond 1e±15. Booleans are
  true iff the cell is exactly ``"true"``.

Image columns never carry an unbounded payload; see :class:`ImageColumnPolicy`.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any, Literal

from pydantic import ValidationError

from .images import is_present as _image_present
from .logging_setup import get_logger
from .models import Customer, Entity, Expense, Order, OrderStatus

_logger = get_logger("order_ledger.codec")


class CollectionKind(StrEnum):
    ORDERS = "orders"
    CUSTOMERS = "customers"
    EXPENSES = "expenses"

    @property
    def sheet_name(self) -> str:
        return self.value.capitalize()


ORDER_HEADERS: tuple[str, ...] = (
    "id",
    "customerName",
    "customerPhone",
    "cakeType",
    "quantity",
    "price",
    "additionalCharges",
    "deliveryCharge",
    "grandTotal",
    "otherDetails",
    "cakeImage",
    "deliveredImage",
    "hasDelivery",
    "deliveryAddress",
    "dueDate",
    "orderDate",
    "status",
    "isEggless",
)

CUSTOMER_HEADERS: tuple[str, ...] = ("id", "name", "phone", "email", "firstOrderDate")

EXPENSE_HEADERS: tuple[str, ...] = ("id", "description", "amount", "date", "category")

HEADERS: Mapping[CollectionKind, tuple[str, ...]] = {
    CollectionKind.ORDERS: ORDER_HEADERS,
    CollectionKind.CUSTOMERS: CUSTOMER_HEADERS,
    CollectionKind.EXPENSES: EXPENSE_HEADERS,
}

# Legacy header -> current header. The current header wins when both columns
# exist and its cell is non-empty.
HEADER_ALIASES: Mapping[str, str] = {
    "deliveryDate": "dueDate",
}

IMAGE_FLAG_PRESENT = "Yes"
IMAGE_FLAG_ABSENT = "No"

# Google Sheets rejects cells above 50k characters; leave headroom.
DEFAULT_MAX_IMAGE_CHARS = 45_000


@dataclass(frozen=True, slots=True)
class ImageColumnPolicy:
    """How image references are written into their sheet columns.

    - ``mode="flag"``: write ``"Yes"``/``"No"`` only.
    - ``mode="payload"``: write the reference itself when it fits in
      ``max_chars``; fall back to the ``"Yes"`` flag when it does not.
    """

    mode: Literal["flag", "payload"] = "flag"
    max_chars: int = DEFAULT_MAX_IMAGE_CHARS

    def __post_init__(self) -> None:
        if self.mode not in ("flag", "payload"):
            raise ValueError(f"ImageColumnPolicy.mode must be 'flag' or 'payload', got {self.mode!r}")
        if isinstance(self.max_chars, bool) or self.max_chars <= 0:
            raise ValueError("ImageColumnPolicy.max_chars must be a positive integer")

    def encode(self, ref: str | None) -> str:
        if not _image_present(ref):
            return IMAGE_FLAG_ABSENT
        assert ref is not None
        if self.mode == "payload" and len(ref) <= self.max_chars:
            return ref
        return IMAGE_FLAG_PRESENT


FLAG_ONLY = ImageColumnPolicy()


# ----------------------------------------------------------------------------
# Cell formatting / parsing
# ----------------------------------------------------------------------------


def _fmt_decimal(value: Decimal) -> str:
    return format(value, "f")


def _fmt_bool(value: bool) -> str:
    return "true" if value else "false"


def _fmt_date(value: dt.date | None) -> str:
    return value.isoformat() if value is not None else ""


def _cell_text(raw: Any) -> str:
    """Coerce one JSON cell to text.

    The Apps Script endpoint returns typed cell values (numbers, booleans)
    for cells someone edited by hand.
    """

    if raw is None:
        return ""
    if isinstance(raw, bool):
        return _fmt_bool(raw)
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    return str(raw)


def _opt_text(value: str) -> str | None:
    return value if value.strip() else None


# Bound on the decimal exponent; a hand-typed "1e999999999" would otherwise
# expand into a billion-digit integer or cell.
_MAX_EXPONENT = 15


def _parse_decimal(value: str) -> Decimal:
    s = value.strip().replace(",", "")
    if not s:
        return Decimal(0)
    try:
        d = Decimal(s)
    except InvalidOperation:
        return Decimal(0)
    if not d.is_finite() or abs(d.adjusted()) > _MAX_EXPONENT:
        return Decimal(0)
    return d


def _parse_quantity(value: str) -> int:
    q = int(_parse_decimal(value))
    return q if q >= 1 else 1


def _parse_bool(value: str) -> bool:
    return value == "true"


def _parse_date(value: str) -> dt.date | None:
    s = value.strip()
    if not s:
        return None
    try:
        return dt.date.fromisoformat(s)
    except ValueError:
        pass
    try:
        stamp = dt.datetime.fromisoformat(s)
    except ValueError:
        stamp = None
    if stamp is not None:
        # Sheet date cells arrive as UTC instants of local midnight.
        if stamp.tzinfo is not None:
            stamp = stamp.astimezone()
        return stamp.date()
    for fmt in ("%m/%d/%Y", "%m/%d/%y"):
        try:
            return dt.datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def _parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value.strip())
    except ValueError:
        return OrderStatus.PENDING


def _parse_image(value: str) -> str | None:
    if value in (IMAGE_FLAG_PRESENT, IMAGE_FLAG_ABSENT) or not value.strip():
        return None
    return value


# ----------------------------------------------------------------------------
# Encoding
# ----------------------------------------------------------------------------


def encode_order(order: Order, *, images: ImageColumnPolicy = FLAG_ONLY) -> list[str]:
    return [
        order.id,
        order.customer_name,
        order.customer_phone or "",
        order.cake_type,
        str(order.quantity),
        _fmt_decimal(order.price),
        _fmt_decimal(order.additional_charges),
        _fmt_decimal(order.delivery_charge),
        _fmt_decimal(order.grand_total),
        order.other_details or "",
        images.encode(order.cake_image),
        images.encode(order.delivered_image),
        _fmt_bool(order.has_delivery),
        order.delivery_address or "",
        _fmt_date(order.due_date),
        _fmt_date(order.order_date),
        order.status.value,
        _fmt_bool(order.is_eggless),
    ]


def encode_customer(customer: Customer) -> list[str]:
    return [
        customer.id,
        customer.name,
        customer.phone,
        customer.email or "",
        _fmt_date(customer.first_order_date),
    ]


def encode_expense(expense: Expense) -> list[str]:
    return [
        expense.id,
        expense.description,
        _fmt_decimal(expense.amount),
        _fmt_date(expense.date),
        expense.category,
    ]


def encode(entity: Entity, *, images: ImageColumnPolicy = FLAG_ONLY) -> list[str]:
    """Encode any entity into its sheet row."""

    if isinstance(entity, Order):
        return encode_order(entity, images=images)
    if isinstance(entity, Customer):
        return encode_customer(entity)
    if isinstance(entity, Expense):
        return encode_expense(entity)
    raise TypeError(f"cannot encode {type(entity).__name__}")


def encode_table(
    kind: CollectionKind,
    entities: Iterable[Entity],
    *,
    images: ImageColumnPolicy = FLAG_ONLY,
) -> tuple[list[str], list[list[str]]]:
    """Return ``(header, rows)`` for a whole collection."""

    return list(HEADERS[kind]), [encode(e, images=images) for e in entities]


# ----------------------------------------------------------------------------
# Decoding
# ----------------------------------------------------------------------------


def _row_cells(header: Sequence[Any], row: Sequence[Any]) -> dict[str, str]:
    """Map canonical header names to cell text for one data row."""

    cells: dict[str, str] = {}
    legacy: dict[str, str] = {}
    for idx, raw_name in enumerate(header):
        name = _cell_text(raw_name).strip()
        value = _cell_text(row[idx]) if idx < len(row) else ""
        canonical = HEADER_ALIASES.get(name)
        if canonical is not None:
            legacy.setdefault(canonical, value)
        else:
            cells.setdefault(name, value)
    for canonical, value in legacy.items():
        if not cells.get(canonical, "").strip():
            cells[canonical] = value
    return cells


def _decode_order(cells: Mapping[str, str]) -> Order | None:
    id_ = cells.get("id", "")
    customer_name = cells.get("customerName", "")
    cake_type = cells.get("cakeType", "")
    if not id_.strip() or not customer_name.strip() or not cake_type.strip():
        return None
    return Order(
        id=id_,
        customer_name=customer_name,
        customer_phone=_opt_text(cells.get("customerPhone", "")),
        cake_type=cake_type,
        quantity=_parse_quantity(cells.get("quantity", "")),
        price=_parse_decimal(cells.get("price", "")),
        additional_charges=_parse_decimal(cells.get("additionalCharges", "")),
        delivery_charge=_parse_decimal(cells.get("deliveryCharge", "")),
        other_details=_opt_text(cells.get("otherDetails", "")),
        cake_image=_parse_image(cells.get("cakeImage", "")),
        delivered_image=_parse_image(cells.get("deliveredImage", "")),
        has_delivery=_parse_bool(cells.get("hasDelivery", "")),
        delivery_address=_opt_text(cells.get("deliveryAddress", "")),
        due_date=_parse_date(cells.get("dueDate", "")),
        order_date=_parse_date(cells.get("orderDate", "")),
        status=_parse_status(cells.get("status", "")),
        is_eggless=_parse_bool(cells.get("isEggless", "")),
    )


def _decode_customer(cells: Mapping[str, str]) -> Customer | None:
    id_ = cells.get("id", "")
    name = cells.get("name", "")
    if not id_.strip() or not name.strip():
        return None
    return Customer(
        id=id_,
        name=name,
        phone=cells.get("phone", ""),
        email=_opt_text(cells.get("email", "")),
        first_order_date=_parse_date(cells.get("firstOrderDate", "")),
    )


def _decode_expense(cells: Mapping[str, str]) -> Expense | None:
    id_ = cells.get("id", "")
    description = cells.get("description", "")
    if not id_.strip() or not description.strip():
        return None
    return Expense(
        id=id_,
        description=description,
        amount=_parse_decimal(cells.get("amount", "")),
        date=_parse_date(cells.get("date", "")),
        category=cells.get("category", ""),
    )


_DECODERS = {
    CollectionKind.ORDERS: _decode_order,
    CollectionKind.CUSTOMERS: _decode_customer,
    CollectionKind.EXPENSES: _decode_expense,
}


def decode_collection(
    kind: CollectionKind,
    header: Sequence[Any],
    rows: Iterable[Sequence[Any]],
) -> list[Entity | None]:
    """Decode data rows against ``header``; dropped rows come back as ``None``."""

    decoder = _DECODERS[kind]
    out: list[Entity | None] = []
    for pos, row in enumerate(rows):
        try:
            entity = decoder(_row_cells(header, row))
        except (ValueError, TypeError, ValidationError):
            _logger.warning(
                "decode:row_failed sheet=%s row=%d", kind.sheet_name, pos, exc_info=True
            )
            entity = None
        if entity is None:
            _logger.debug("decode:row_dropped sheet=%s row=%d", kind.sheet_name, pos)
        out.append(entity)
    return out


def decode_orders(header: Sequence[Any], rows: Iterable[Sequence[Any]]) -> list[Order | None]:
    return decode_collection(CollectionKind.ORDERS, header, rows)  # type: ignore[return-value]


def decode_customers(
    header: Sequence[Any], rows: Iterable[Sequence[Any]]
) -> list[Customer | None]:
    return decode_collection(CollectionKind.CUSTOMERS, header, rows)  # type: ignore[return-value]


def decode_expenses(
    header: Sequence[Any], rows: Iterable[Sequence[Any]]
) -> list[Expense | None]:
    return decode_collection(CollectionKind.EXPENSES, header, rows)  # type: ignore[return-value]


def parse_table(kind: CollectionKind, table: Sequence[Sequence[Any]] | None) -> tuple[Entity, ...]:
    """Decode a whole sheet (header row first), dropping malformed rows.

    A missing sheet or one with only a header is an empty collection.
    """

    if not table or len(table) < 2:
        return ()
    header, *rows = table
    return tuple(e for e in decode_collection(kind, header, rows) if e is not None)


__all__ = [
    "CollectionKind",
    "ORDER_HEADERS",
    "CUSTOMER_HEADERS",
    "EXPENSE_HEADERS",
    "HEADERS",
    "HEADER_ALIASES",
    "IMAGE_FLAG_PRESENT",
    "IMAGE_FLAG_ABSENT",
    "ImageColumnPolicy",
    "FLAG_ONLY",
    "encode",
    "encode_order",
    "encode_customer",
    "encode_expense",
    "encode_table",
    "decode_collection",
    "decode_orders",
    "decode_customers",
    "decode_expenses",
    "parse_table",
]
