"""Log output for ``order_ledger``.

Every module logs through ``get_logger("order_ledger.<module>")`` and never
touches handlers. Until a host calls :func:`configure_logging`, the
``order_ledger`` logger carries a ``NullHandler`` and stays quiet. The CLI
calls it once from its root callback; a second call is ignored.

Messages are an event tag followed by ``key=value`` context, for example
``store:push_failed; local state kept: ...``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

ROOT_LOGGER = "order_ledger"
LEVEL_ENV = "ORDER_LEDGER_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_configured = False


def _as_level(value: str) -> int | None:
    text = value.strip().upper()
    if text.isdigit():
        return int(text)
    return logging.getLevelNamesMapping().get(text)


def resolve_level(level: int | str | None = None) -> int:
    """Pick the effective level.

    An int is used as is. A name ("debug", "WARNING") or a numeric string is
    looked up; when it is missing or unknown, ``ORDER_LEDGER_LOG_LEVEL`` gets
    the same treatment, and INFO is the fallback.
    """

    if isinstance(level, int):
        return level
    for candidate in (level, os.getenv(LEVEL_ENV)):
        if candidate:
            found = _as_level(candidate)
            if found is not None:
                return found
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Send ``order_ledger`` records to ``stream``; later calls do nothing."""

    global _configured
    if _configured:
        return

    root = logging.getLogger(ROOT_LOGGER)
    # The placeholder from get_logger would otherwise sit next to the real handler.
    for existing in [h for h in root.handlers if isinstance(h, logging.NullHandler)]:
        root.removeHandler(existing)

    resolved = resolve_level(level)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))
    handler.setLevel(resolved)
    root.addHandler(handler)
    root.setLevel(resolved)
    root.propagate = False

    _configured = True


def get_logger(name: str) -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not _configured and not root.handlers:
        root.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "resolve_level"]
