"""Side channel that carries one value per in-flight query context."""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager
from typing import Final, Generic, TypeVar

T = TypeVar("T")


class _Absent:
    """Type of :data:`ABSENT`."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Final = _Absent()


class ContextValueRegistry(Generic[T]):
    """Thread-safe mapping from a query context to one associated value.

    The web layer stores the inbound request's auth context here so the executor, whose entry point only receives
    the query context, can forward the user's OAuth token. Every operation holds a single lock for the duration of
    one dict access and never across I/O.

    Entries do not expire: whoever calls :meth:`put` must call :meth:`remove` once the request finishes, or use
    :meth:`scoped` which does it on exit.
    """

    def __init__(self) -> None:
        self._values: dict[Hashable, T] = {}
        self._lock = threading.Lock()

    def put(self, token: Hashable, value: T) -> None:
        """Store ``value`` for ``token``, replacing any previous entry."""

        with self._lock:
            self._values[token] = value

    def get(self, token: Hashable, default: T | _Absent = ABSENT) -> T | _Absent:
        """Return the value stored for ``token`` or ``default`` (:data:`ABSENT` unless given)."""

        with self._lock:
            return self._values.get(token, default)

    def remove(self, token: Hashable) -> None:
        """Drop the entry for ``token``. Missing tokens are ignored."""

        with self._lock:
            self._values.pop(token, None)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    @contextmanager
    def scoped(self, token: Hashable, value: T) -> Iterator[T]:
        """Register ``value`` for the lifetime of the ``with`` block."""

        self.put(token, value)
        try:
            yield value
        finally:
            self.remove(token)


__all__ = ["ABSENT", "ContextValueRegistry"]
