"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the local-cache table used by ``order_ledger``.
"""

from .ledger import Base, OlCacheEntry

__all__ = [
    "Base",
    "OlCacheEntry",
]
