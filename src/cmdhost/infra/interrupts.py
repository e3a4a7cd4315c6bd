"""Infrastructure: process interrupt channel backed by OS signals.

Listeners are called on the event loop thread, once per delivered
signal, in registration order.  The OS handlers are installed by
:meth:`SignalInterruptChannel.open` and restored by
:meth:`SignalInterruptChannel.close`.

Rules
-----
* No imports from ``cli``.
* ``loop.add_signal_handler`` where supported; ``signal.signal`` with a
  thread-safe hop onto the loop otherwise (Windows).
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Sequence
from types import FrameType
from typing import Any

from cmdhost.core.protocols import InterruptListener

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS: tuple[signal.Signals, ...] = tuple(
    sig for sig in (
        getattr(signal, "SIGINT", None),
        getattr(signal, "SIGTERM", None),
    ) if sig is not None
)


class SignalInterruptChannel:
    """Fan-out of OS interrupt signals to registered listeners."""

    def __init__(self, signals: Sequence[signal.Signals] = DEFAULT_SIGNALS) -> None:
        self._signals = tuple(signals)
        self._listeners: list[InterruptListener] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous: dict[signal.Signals, Any] = {}
        self._loop_handlers: list[signal.Signals] = []

    # ------------------------------------------------------------------
    # Listener registry
    # ------------------------------------------------------------------

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: InterruptListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: InterruptListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def fire(self) -> None:
        """Deliver one interrupt event to every current listener."""
        for listener in list(self._listeners):
            listener()

    # ------------------------------------------------------------------
    # OS integration
    # ------------------------------------------------------------------

    def open(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Route the configured signals to :meth:`fire` on *loop*."""
        self._loop = loop or asyncio.get_running_loop()
        for sig in self._signals:
            try:
                self._loop.add_signal_handler(sig, self._on_loop_signal, sig)
                self._loop_handlers.append(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                self._previous[sig] = signal.signal(sig, self._on_os_signal)

    def close(self) -> None:
        """Restore the previous signal handling."""
        loop, self._loop = self._loop, None
        if loop is not None and not loop.is_closed():
            for sig in self._loop_handlers:
                loop.remove_signal_handler(sig)
        self._loop_handlers.clear()
        for sig, previous in self._previous.items():
            signal.signal(sig, previous)
        self._previous.clear()

    def __enter__(self) -> SignalInterruptChannel:
        self.open()
        return self

    def __exit__(self, *_args: object) -> None:
        self.close()

    def _on_loop_signal(self, sig: signal.Signals) -> None:
        logger.debug("Received %s", signal.Signals(sig).name)
        self.fire()

    def _on_os_signal(self, signum: int, _frame: FrameType | None) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._on_loop_signal, signal.Signals(signum))
