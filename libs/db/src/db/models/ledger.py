from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Local cache: ol_cache_entries
# ---------------------------


class OlCacheEntry(Base):
    """One cached collection blob per key (``orders``, ``customers``, ``expenses``).

    ``payload`` holds the JSON array exactly as the file-cache backend writes
    it. There is no schema stamp; readers treat a missing row as an empty
    collection.
    """

    __tablename__ = "ol_cache_entries"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    # Number of records in ``payload``; informational only.
    item_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )


__all__ = [
    "Base",
    "OlCacheEntry",
]
