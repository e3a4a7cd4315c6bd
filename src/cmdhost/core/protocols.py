"""Protocols (interfaces) consumed by the core layer.

These define the contracts that executors and the hosting runtime must
satisfy.  Core code depends ONLY on these protocols, never on the
concrete host in :mod:`cmdhost.infra`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from contextlib import AbstractContextManager
from typing import Any, Protocol, TypeVar

from cmdhost.core.cancellation import CancellationToken

T = TypeVar("T")

InterruptListener = Callable[[], None]
"""Callback invoked once per interrupt event delivered by a channel."""


class CommandExecutor(Protocol):
    """The minimal capability every runnable command exposes.

    Any object that implements :meth:`run_async` with the correct
    signature satisfies this protocol structurally (no explicit
    inheritance required).
    """

    def run_async(self, cancel_token: CancellationToken) -> Awaitable[int]:
        """Run the command and return its exit code.

        ``0`` denotes success, any other value denotes failure.  Honouring
        *cancel_token* is the command's own responsibility.
        """
        ...  # pragma: no cover


class ServiceScope(Protocol):
    """A disposable bracket around the instances of one invocation."""

    def get_or_create(self, cls: type[T]) -> T:
        """Return a registered service of type *cls*, or construct one.

        Raises
        ------
        ServiceResolutionError
            When *cls* cannot be constructed from registered services.
        """
        ...  # pragma: no cover

    def provide(self, key: Any, instance: Any) -> None:
        """Make *instance* resolvable as *key* within this scope only."""
        ...  # pragma: no cover


class ScopeFactory(Protocol):
    """Produces fresh invocation scopes."""

    def create_scope(self) -> AbstractContextManager[ServiceScope]:
        """Open a new scope; leaving the context disposes of it."""
        ...  # pragma: no cover


class HostRuntime(ScopeFactory, Protocol):
    """The two capabilities the core needs from the hosting runtime."""

    def force_stop(self) -> None:
        """Request an abrupt, non-graceful stop.  Must not block."""
        ...  # pragma: no cover


class InterruptChannel(Protocol):
    """A process-wide source of interrupt events (e.g. Ctrl+C)."""

    def add_listener(self, listener: InterruptListener) -> None:
        """Attach *listener*; it is called once for every future interrupt."""
        ...  # pragma: no cover

    def remove_listener(self, listener: InterruptListener) -> None:
        """Detach *listener*.  Removing an unknown listener is a no-op."""
        ...  # pragma: no cover


BoundInvoke = Callable[[CancellationToken, Mapping[str, Any] | None], Awaitable[int]]
"""A resolved run operation: ``(cancel_token, arguments) -> exit code``."""
