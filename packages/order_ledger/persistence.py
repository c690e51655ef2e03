# ruff: noqa: I001
"""SQL-backed local cache.

Stores each collection blob as one row of ``ol_cache_entries`` (owned by the
shared ``libs/db`` library), through a short session per call provided by
``db.client.session_scope``. The payload is the same JSON the file backend
writes, so the two backends are interchangeable.

Create the table with the ``libs/db`` Alembic migrations (``0001_ol_cache``)
or, for throwaway databases, :func:`ensure_schema`.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from db import Base
from db.client import get_engine, session_scope
from db.models.ledger import OlCacheEntry
from .cache import dump_blob, load_blob
from .codec import CollectionKind
from .errors import CacheError
from .logging_setup import get_logger
from .models import Entity

_logger = get_logger("order_ledger.persistence")


def ensure_schema(*, database_url: str | None = None) -> None:
    """Create ``ol_cache_entries`` when missing (no-op otherwise)."""

    engine = get_engine(database_url=database_url)
    Base.metadata.create_all(bind=engine, tables=[OlCacheEntry.__table__])


class SqlCache:
    """Local cache rows in ``ol_cache_entries`` keyed by collection name."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url

    def read(self, kind: CollectionKind) -> tuple[Entity, ...]:
        try:
            with session_scope(database_url=self._database_url) as session:
                row = session.get(OlCacheEntry, kind.value)
                payload = row.payload if row is not None else None
        except SQLAlchemyError:
            _logger.warning("cache:read_failed; treating as empty key=%s", kind.value, exc_info=True)
            return ()
        if payload is None:
            return ()
        try:
            return load_blob(kind, payload)
        except ValidationError:
            _logger.warning("cache:payload_invalid; treating as empty key=%s", kind.value, exc_info=True)
            return ()

    def write(self, kind: CollectionKind, entities: Iterable[Entity]) -> None:
        items = list(entities)
        payload = dump_blob(kind, items).decode("utf-8")
        try:
            with session_scope(database_url=self._database_url) as session:
                session.merge(
                    OlCacheEntry(
                        key=kind.value,
                        payload=payload,
                        item_count=len(items),
                        updated_at=datetime.now(UTC),
                    )
                )
        except SQLAlchemyError as e:
            raise CacheError(f"could not write cache key {kind.value!r}: {e}") from e


__all__ = ["SqlCache", "ensure_schema"]
