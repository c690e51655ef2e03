"""Local cache: the durable backstop behind the reactive store.

Layout
------
Three independently keyed blobs, one per collection (``orders``,
``customers``, ``expenses``). Each blob is a JSON array of entity records
using the sheet's camelCase field names. There is no schema stamp: an absent
key is an empty collection (first run), and a blob that cannot be read or
validated is logged and treated as empty as well.

Backends
--------
- :class:`JsonFileCache` (default): ``<cache_root>/ledger/<key>.json``.
  Cache root defaults to ``./.cache``; override with
  ``ORDER_LEDGER_CACHE_DIR``. Writes target ``.tmp`` first and then
  ``os.replace`` into place.
- :class:`order_ledger.persistence.SqlCache`: one row per key in the shared
  ``db`` library's ``ol_cache_entries`` table.

Write failures raise :class:`~order_ledger.errors.CacheError`; they are the
only failures a store mutation surfaces to its caller.
"""

from __future__ import annotations

import contextlib
import os
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import TypeAdapter, ValidationError

from .codec import CollectionKind
from .errors import CacheError, ConfigurationError
from .logging_setup import get_logger
from .models import Customer, Entity, Expense, FetchedCollections, Order

if TYPE_CHECKING:
    from .config import LedgerSettings

_logger = get_logger("order_ledger.cache")

_ADAPTERS: dict[CollectionKind, TypeAdapter[Any]] = {
    CollectionKind.ORDERS: TypeAdapter(list[Order]),
    CollectionKind.CUSTOMERS: TypeAdapter(list[Customer]),
    CollectionKind.EXPENSES: TypeAdapter(list[Expense]),
}


def dump_blob(kind: CollectionKind, entities: Iterable[Entity]) -> bytes:
    """Serialize one collection to its JSON blob."""

    return _ADAPTERS[kind].dump_json(list(entities), by_alias=True)


def load_blob(kind: CollectionKind, blob: str | bytes) -> tuple[Entity, ...]:
    """Parse one JSON blob; raises ``ValidationError`` on a bad payload."""

    return tuple(_ADAPTERS[kind].validate_json(blob))


class LocalCache(Protocol):
    def read(self, kind: CollectionKind) -> tuple[Entity, ...]:
        """Return the cached collection, or ``()`` when absent/unreadable."""

    def write(self, kind: CollectionKind, entities: Iterable[Entity]) -> None:
        """Replace the cached collection. Raises ``CacheError`` on failure."""


def load_all(cache: LocalCache) -> FetchedCollections:
    return FetchedCollections(
        orders=cache.read(CollectionKind.ORDERS),  # type: ignore[arg-type]
        customers=cache.read(CollectionKind.CUSTOMERS),  # type: ignore[arg-type]
        expenses=cache.read(CollectionKind.EXPENSES),  # type: ignore[arg-type]
    )


def save_all(cache: LocalCache, collections: FetchedCollections) -> None:
    cache.write(CollectionKind.ORDERS, collections.orders)
    cache.write(CollectionKind.CUSTOMERS, collections.customers)
    cache.write(CollectionKind.EXPENSES, collections.expenses)


# ----------------------------------------------------------------------------
# JSON file backend
# ----------------------------------------------------------------------------


def _get_cache_root() -> Path:
    """Return the cache root directory.

    Default: ``./.cache`` under the current working directory.
    Override: ``ORDER_LEDGER_CACHE_DIR`` environment variable.
    """

    root = os.getenv("ORDER_LEDGER_CACHE_DIR")
    if root and root.strip():
        return Path(root).expanduser().resolve()
    return (Path.cwd() / ".cache").resolve()


class JsonFileCache:
    """One JSON file per collection under ``<root>/ledger``."""

    def __init__(self, root: str | os.PathLike[str] | None = None) -> None:
        base = Path(root).expanduser().resolve() if root is not None else _get_cache_root()
        self._dir = base / "ledger"

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, kind: CollectionKind) -> Path:
        return self._dir / f"{kind.value}.json"

    def read(self, kind: CollectionKind) -> tuple[Entity, ...]:
        path = self._path(kind)
        if not path.exists():
            return ()
        try:
            return load_blob(kind, path.read_bytes())
        except (OSError, ValidationError):
            _logger.warning(
                "cache:read_failed; treating as empty key=%s path=%s",
                kind.value,
                os.fspath(path),
                exc_info=True,
            )
            return ()

    def write(self, kind: CollectionKind, entities: Iterable[Entity]) -> None:
        path = self._path(kind)
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            blob = dump_blob(kind, entities)
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(blob)
            os.replace(tmp, path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp.unlink()
            raise CacheError(f"could not write cache key {kind.value!r} at {path}: {e}") from e


def open_cache(settings: LedgerSettings) -> LocalCache:
    """Build the cache backend selected by ``settings.cache_backend``."""

    if settings.cache_backend == "db":
        if not settings.database_url:
            raise ConfigurationError("ORDER_LEDGER_CACHE_BACKEND=db requires DATABASE_URL")
        # Local import keeps SQLAlchemy off the import path of file-cache users.
        from .persistence import SqlCache

        return SqlCache(database_url=settings.database_url)
    return JsonFileCache(settings.cache_dir)


__all__ = [
    "LocalCache",
    "JsonFileCache",
    "dump_blob",
    "load_blob",
    "load_all",
    "save_all",
    "open_cache",
]
