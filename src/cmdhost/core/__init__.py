"""Core layer — command definitions, resolution, and dispatch.

Rules
-----
* No ``print()`` calls.
* No imports from ``cli`` or ``infra``.
* The hosting runtime and the interrupt channel are reached only
  through :mod:`cmdhost.core.protocols`.
"""

from cmdhost.core.cancellation import CancellationSource, CancellationToken
from cmdhost.core.composer import compose_configuration
from cmdhost.core.definition import ArgumentSpec, CommandNode, GroupExecutor
from cmdhost.core.escalation import CancellationRace, EscalationMiddleware, RaceState
from cmdhost.core.protocols import (
    CommandExecutor,
    HostRuntime,
    InterruptChannel,
    ScopeFactory,
    ServiceScope,
)
from cmdhost.core.resolver import RunMethodDescriptor, resolve_run_method

__all__: list[str] = [
    "ArgumentSpec",
    "CancellationRace",
    "CancellationSource",
    "CancellationToken",
    "CommandExecutor",
    "CommandNode",
    "EscalationMiddleware",
    "GroupExecutor",
    "HostRuntime",
    "InterruptChannel",
    "RaceState",
    "RunMethodDescriptor",
    "ScopeFactory",
    "ServiceScope",
    "compose_configuration",
    "resolve_run_method",
]
