"""Detached background work for the store's fire-and-forget sync.

Two small primitives over ``ThreadPoolExecutor``:

- :class:`BackgroundDispatcher` spawns one detached unit of work per call and
  never lets its failure reach the caller. ``drain()`` waits for everything
  spawned so far, which is how shutdown (and tests) observe "sync later".
- :func:`gather_settled` runs a handful of callables concurrently and reports
  every outcome, success or failure, in input order. Unlike a fail-fast map,
  one failure never cancels or hides the others.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, NamedTuple, TypeVar

from .logging_setup import get_logger

T = TypeVar("T")

_logger = get_logger("order_ledger.background")


class Settled(NamedTuple):
    """Outcome of one call in :func:`gather_settled`."""

    value: Any
    error: Exception | None

    @property
    def ok(self) -> bool:
        return self.error is None


def gather_settled(calls: Sequence[Callable[[], T]], *, concurrency: int) -> list[Settled]:
    """Run ``calls`` with at most ``concurrency`` in flight; return all outcomes.

    Output order matches input order. Exceptions are captured, not raised.
    """

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")
    if not calls:
        return []

    with ThreadPoolExecutor(max_workers=min(concurrency, len(calls))) as pool:
        futures = [pool.submit(call) for call in calls]
        wait(futures)

    out: list[Settled] = []
    for fut in futures:
        exc = fut.exception()
        if exc is None:
            out.append(Settled(fut.result(), None))
        elif isinstance(exc, Exception):
            out.append(Settled(None, exc))
        else:  # pragma: no cover - KeyboardInterrupt and friends propagate
            raise exc
    return out


class BackgroundDispatcher:
    """Owns a thread pool for detached tasks spawned by the store."""

    def __init__(self, *, max_workers: int = 2, name: str = "order-ledger") -> None:
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._pending: set[Future[Any]] = set()
        self._lock = threading.Lock()
        self._closed = False

    def spawn(self, fn: Callable[..., Any], /, *args: Any, label: str = "task", **kwargs: Any) -> Future[Any]:
        """Submit ``fn`` and return immediately.

        An exception escaping ``fn`` is logged with its traceback and otherwise
        dropped; the returned future still carries it for callers that look.
        """

        with self._lock:
            if self._closed:
                raise RuntimeError("BackgroundDispatcher is shut down")
            fut = self._pool.submit(fn, *args, **kwargs)
            self._pending.add(fut)

        def _done(f: Future[Any]) -> None:
            with self._lock:
                self._pending.discard(f)
            if f.cancelled():
                return
            exc = f.exception()
            if exc is not None:
                _logger.error(
                    "background:task_failed label=%s", label, exc_info=(type(exc), exc, exc.__traceback__)
                )

        fut.add_done_callback(_done)
        return fut

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def drain(self, timeout: float | None = None) -> bool:
        """Block until every task spawned so far has finished.

        Returns ``False`` when ``timeout`` elapsed first. Tasks spawned by
        running tasks are waited for as well.
        """

        while True:
            with self._lock:
                pending = {f for f in self._pending if not f.done()}
            if not pending:
                return True
            _done, not_done = wait(pending, timeout=timeout)
            if not_done:
                return False

    def shutdown(self, *, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._pool.shutdown(wait=wait)


__all__ = ["BackgroundDispatcher", "Settled", "gather_settled"]
