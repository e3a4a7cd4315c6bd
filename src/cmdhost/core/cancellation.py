"""Cancellation signals passed to executing commands.

A :class:`CancellationSource` owns the ability to cancel; the
:class:`CancellationToken` it hands out can only observe.  Tokens are
safe to poll from worker threads (``is_cancellation_requested``) and can
be awaited from the event loop (:meth:`CancellationToken.wait`).
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable

from cmdhost.exceptions import OperationCanceledError


class CancellationSource:
    """Signals cancellation to every token it has issued.

    Cancellation is one-way and idempotent: the first :meth:`cancel` call
    runs the registered callbacks, later calls do nothing.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled: bool = False
        self._callbacks: list[Callable[[], None]] = []
        self._waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Future[None]]] = []
        self.token: CancellationToken = CancellationToken(self)

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation (idempotent)."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
            waiters, self._waiters = self._waiters, []

        for loop, future in waiters:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(_resolve, future)
        for callback in callbacks:
            callback()

    # ------------------------------------------------------------------
    # Token plumbing
    # ------------------------------------------------------------------

    def _register(self, callback: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return lambda: self._unregister(callback)
        callback()
        return _noop

    def _unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def _add_waiter(self, future: asyncio.Future[None]) -> bool:
        with self._lock:
            if self._cancelled:
                return False
            self._waiters.append((future.get_loop(), future))
            return True

    def _discard_waiter(self, future: asyncio.Future[None]) -> None:
        with self._lock:
            self._waiters = [w for w in self._waiters if w[1] is not future]


class CancellationToken:
    """Read-only view of a :class:`CancellationSource`.

    A token created without a source can never be cancelled; use
    :meth:`none` to obtain one.
    """

    __slots__ = ("_source",)

    def __init__(self, source: CancellationSource | None = None) -> None:
        self._source = source

    @classmethod
    def none(cls) -> CancellationToken:
        """Return a token that is never cancelled."""
        return cls(None)

    @property
    def can_be_canceled(self) -> bool:
        return self._source is not None

    @property
    def is_cancellation_requested(self) -> bool:
        return self._source is not None and self._source.is_cancellation_requested

    def raise_if_cancellation_requested(self) -> None:
        if self.is_cancellation_requested:
            raise OperationCanceledError("The operation was canceled.")

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run *callback* on cancellation; returns an unregister function.

        If cancellation has already been requested, *callback* runs
        immediately.
        """
        if self._source is None:
            return _noop
        return self._source._register(callback)

    async def wait(self) -> None:
        """Suspend until cancellation is requested."""
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        if self._source is None:
            await future  # never cancelled
            return
        if not self._source._add_waiter(future):
            return
        try:
            await future
        finally:
            self._source._discard_waiter(future)


def _resolve(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


def _noop() -> None:
    return None
