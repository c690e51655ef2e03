"""Exception hierarchy for ``order_ledger``.

Only :class:`CacheError` is expected to reach callers of store mutations;
everything remote-related is logged and absorbed by the store.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all package errors."""


class ConfigurationError(LedgerError):
    """The remote endpoint (or another required setting) is not configured."""


class TransportError(LedgerError):
    """A network-level failure talking to the remote spreadsheet endpoint."""


class CacheError(LedgerError):
    """Local persistence failed; the mutation could not be committed locally."""


class PushFailures(ExceptionGroup):
    """One or more sheet pushes of a fan-out failed.

    Raised only after every push in the fan-out has been attempted.
    """

    def derive(self, excs):  # keep the subclass on split()/subgroup()
        return PushFailures(self.message, excs)


__all__ = [
    "LedgerError",
    "ConfigurationError",
    "TransportError",
    "CacheError",
    "PushFailures",
]
