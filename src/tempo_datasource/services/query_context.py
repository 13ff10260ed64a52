"""Per-request cancellation and deadline scope."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from time import monotonic
from typing import TypeVar

T = TypeVar("T")


class QueryCancelled(Exception):
    """Raised by :meth:`QueryContext.run` when the context is cancelled or its deadline passes."""


class QueryContext:
    """Cancellation/deadline token for one inbound request.

    Instances compare and hash by identity, so a context can key the request's entry in the
    :class:`~tempo_datasource.services.context_registry.ContextValueRegistry`. Work bound to the context through
    :meth:`run` is aborted as soon as :meth:`cancel` is called or the deadline passes.
    """

    def __init__(self, timeout_seconds: float | None = None) -> None:
        self._deadline = monotonic() + timeout_seconds if timeout_seconds is not None else None
        self._cancelled = asyncio.Event()
        self._reason: str | None = None

    def __repr__(self) -> str:
        return f"<QueryContext id={id(self):#x} cancelled={self.is_cancelled}>"

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set() or self.remaining() == 0.0

    @property
    def reason(self) -> str | None:
        if self._reason is None and self.remaining() == 0.0:
            return "deadline exceeded"
        return self._reason

    def remaining(self) -> float | None:
        """Seconds left before the deadline, ``None`` when the context has no deadline."""

        if self._deadline is None:
            return None
        return max(0.0, self._deadline - monotonic())

    def cancel(self, reason: str = "context canceled") -> None:
        if not self._cancelled.is_set():
            self._reason = reason
            self._cancelled.set()

    async def run(
        self,
        awaitable: Awaitable[T],
        on_discard: Callable[[T], Awaitable[None]] | None = None,
    ) -> T:
        """Await ``awaitable`` unless the context is cancelled or expires first.

        The pending work is cancelled and :class:`QueryCancelled` raised when the context wins the race. If the work
        still completes while being cancelled, its result is handed to ``on_discard`` so resources it holds (an open
        streamed response, for instance) can be released.
        """

        if self.is_cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise QueryCancelled(self.reason)

        work = asyncio.ensure_future(awaitable)
        cancelled = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait(
                {work, cancelled},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            cancelled.cancel()

        if work in done:
            return work.result()
        if not self._cancelled.is_set():
            self.cancel("deadline exceeded")

        work.cancel()
        try:
            late = await work
        except asyncio.CancelledError:
            pass
        else:
            if on_discard is not None:
                await on_discard(late)
        raise QueryCancelled(self.reason)


__all__ = ["QueryContext", "QueryCancelled"]
