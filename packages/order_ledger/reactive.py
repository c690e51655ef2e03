"""Replay-latest subjects for publishing store state.

A :class:`BehaviorSubject` always holds a current value. ``subscribe`` calls
the observer with that value immediately and then with every value passed to
``publish``. It is a broadcast of the latest state, not an event log:
observers that subscribe late never see earlier values.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from .logging_setup import get_logger

_logger = get_logger("order_ledger.reactive")

type Observer[T] = Callable[[T], None]
type Unsubscribe = Callable[[], None]


class BehaviorSubject[T]:
    def __init__(self, initial: T, *, name: str = "subject") -> None:
        self._value = initial
        self._name = name
        self._observers: list[Observer[T]] = []
        self._lock = threading.RLock()

    @property
    def value(self) -> T:
        return self._value

    def publish(self, value: T) -> None:
        """Set the current value and notify observers in subscription order.

        An observer that raises is logged and skipped; it does not stop the
        remaining observers or the publisher.
        """

        with self._lock:
            self._value = value
            observers = list(self._observers)
            for observer in observers:
                self._notify(observer, value)

    def subscribe(self, observer: Observer[T]) -> Unsubscribe:
        """Register ``observer`` and replay the current value to it.

        The replay runs outside the subject lock, so an observer may take
        other locks (a store mutating from inside its callback) without
        ordering against a concurrent ``publish``.
        """

        with self._lock:
            self._observers.append(observer)
            current = self._value
        self._notify(observer, current)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    def _notify(self, observer: Observer[T], value: T) -> None:
        try:
            observer(value)
        except Exception:
            _logger.exception("subject:observer_failed subject=%s", self._name)

    def as_observable(self) -> Observable[T]:
        return Observable(self)


class Observable[T]:
    """Read-only face of a subject: observe and read, never publish."""

    __slots__ = ("_subject",)

    def __init__(self, subject: BehaviorSubject[T]) -> None:
        self._subject = subject

    @property
    def value(self) -> T:
        return self._subject.value

    def subscribe(self, observer: Observer[T]) -> Unsubscribe:
        return self._subject.subscribe(observer)


__all__ = ["BehaviorSubject", "Observable", "Observer", "Unsubscribe"]
