"""Infrastructure layer — hosting runtime, settings, and OS signals.

This layer provides the concrete collaborators the core reaches only
through :mod:`cmdhost.core.protocols`.

Rules
-----
* No imports from ``cli``.
* No user-facing output (no ``print()``, no Rich rendering).
"""

from cmdhost.infra.host import (
    Host,
    HostBuilder,
    LifetimeOptions,
    ServiceCollection,
    ServiceScope,
    create_default_builder,
)
from cmdhost.infra.interrupts import SignalInterruptChannel
from cmdhost.infra.settings import Configuration, load_configuration

__all__: list[str] = [
    "Configuration",
    "Host",
    "HostBuilder",
    "LifetimeOptions",
    "ServiceCollection",
    "ServiceScope",
    "SignalInterruptChannel",
    "create_default_builder",
    "load_configuration",
]
