"""Infrastructure: a small application host with scoped services.

The host owns the layered :class:`~cmdhost.infra.settings.Configuration`,
a :class:`ServiceCollection` of singletons and factories, and provides
the two capabilities the core relies on: opening an invocation scope
and forcing an abrupt stop.

Rules
-----
* No imports from ``cli``.
* No user-facing output; status messages go through :mod:`logging`.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, fields, is_dataclass, replace
from typing import Any, TypeVar, get_type_hints

from cmdhost.core.definition import CommandNode
from cmdhost.exceptions import ServiceResolutionError
from cmdhost.infra.settings import Configuration, load_configuration

logger = logging.getLogger(__name__)

T = TypeVar("T")

Factory = Callable[["ServiceScope"], Any]


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class LifetimeOptions:
    """Host lifetime behaviour, bound from the ``Lifetime`` section."""

    suppress_status_messages: bool = False
    """Do not log start/stop status messages."""


@dataclass(frozen=True, slots=True)
class CommandLineArguments:
    """The raw argument vector the host was built for."""

    argv: tuple[str, ...]


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

class ServiceCollection:
    """Registry of services, keyed by type."""

    def __init__(self) -> None:
        self._singletons: dict[Any, Any] = {}
        self._factories: dict[Any, Factory] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._singletons or key in self._factories

    def add_singleton(self, key: Any, instance: Any) -> ServiceCollection:
        self._factories.pop(key, None)
        self._singletons[key] = instance
        return self

    def add_factory(self, key: Any, factory: Factory) -> ServiceCollection:
        """Register *factory*, called once per scope that asks for *key*."""
        self._singletons.pop(key, None)
        self._factories[key] = factory
        return self

    def add_transient(self, cls: type) -> ServiceCollection:
        """Construct *cls* per scope by constructor injection."""
        return self.add_factory(cls, lambda scope: scope.construct(cls))

    def singleton(self, key: Any) -> Any:
        return self._singletons.get(key)

    def factory(self, key: Any) -> Factory | None:
        return self._factories.get(key)


class ServiceScope:
    """Instances created for one invocation.

    Factories run at most once per scope.  Instances the scope created
    are closed, most recent first, when the scope is disposed.
    """

    def __init__(self, services: ServiceCollection) -> None:
        self._services = services
        self._instances: dict[Any, Any] = {}
        self._owned: list[Any] = []
        self.disposed: bool = False

    def get(self, key: Any) -> Any:
        """Return the registered service for *key*, or ``None``."""
        if key in self._instances:
            return self._instances[key]
        if key in self._services:
            singleton = self._services.singleton(key)
            if singleton is not None:
                return singleton
            factory = self._services.factory(key)
            if factory is not None:
                instance = factory(self)
                self._instances[key] = instance
                self._owned.append(instance)
                return instance
        return None

    def provide(self, key: Any, instance: Any) -> None:
        """Make *instance* resolvable as *key* in this scope.

        Provided instances belong to the caller and are not closed on
        dispose.
        """
        self._instances[key] = instance

    def get_or_create(self, cls: type[T]) -> T:
        """Return a registered *cls*, or construct one for this scope."""
        if self.disposed:
            raise ServiceResolutionError("The service scope has been disposed.")
        instance = self.get(cls)
        if instance is not None:
            return instance
        instance = self.construct(cls)
        self._instances[cls] = instance
        self._owned.append(instance)
        return instance

    def construct(self, cls: type[T]) -> T:
        """Build *cls*, injecting constructor parameters by annotation."""
        try:
            hints = get_type_hints(cls.__init__)
        except Exception:  # noqa: BLE001
            hints = {}
        kwargs: dict[str, Any] = {}
        for param in inspect.signature(cls).parameters.values():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            annotation = hints.get(param.name, param.annotation)
            service = None
            for candidate in _service_keys(annotation):
                service = self.get(candidate)
                if service is not None:
                    break
            if service is not None:
                kwargs[param.name] = service
            elif param.default is not param.empty:
                continue
            else:
                raise ServiceResolutionError(
                    f"Cannot construct {cls.__qualname__}: no service "
                    f"registered for parameter '{param.name}'.",
                    hint="Register it with HostBuilder.configure_services().",
                )
        return cls(**kwargs)

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        owned, self._owned = self._owned, []
        self._instances.clear()
        for instance in reversed(owned):
            close = getattr(instance, "close", None)
            if callable(close):
                close()


def _service_keys(annotation: Any) -> Sequence[Any]:
    if annotation is inspect.Parameter.empty:
        return ()
    args = getattr(annotation, "__args__", None)
    if args and type(None) in args:
        return tuple(arg for arg in args if arg is not type(None))
    return (annotation,)


# ---------------------------------------------------------------------------
# Host
# ---------------------------------------------------------------------------

class Host:
    """A built application host."""

    def __init__(
        self,
        configuration: Configuration,
        services: ServiceCollection,
        argv: Sequence[str] = (),
        definitions: Sequence[CommandNode] = (),
    ) -> None:
        self.configuration = configuration
        self.services = services
        self.argv: tuple[str, ...] = tuple(argv)
        self._definitions: dict[tuple[str, ...], CommandNode] = {
            node.path: node for node in definitions
        }
        self.stopped_abruptly: bool = False
        services.add_singleton(Host, self)
        services.add_singleton(Configuration, configuration)

    @property
    def lifetime(self) -> LifetimeOptions:
        options = self.services.singleton(LifetimeOptions)
        return options if options is not None else LifetimeOptions()

    def find_definition(self, *path: str) -> CommandNode | None:
        """Return the registered command at *path* (root name first)."""
        return self._definitions.get(path)

    @contextmanager
    def create_scope(self) -> Iterator[ServiceScope]:
        """Open an invocation scope; it is disposed on every exit path."""
        scope = ServiceScope(self.services)
        try:
            yield scope
        finally:
            scope.dispose()

    def force_stop(self) -> None:
        """Record an abrupt stop request (idempotent, never blocks).

        The process boundary performs the actual termination.
        """
        if self.stopped_abruptly:
            return
        self.stopped_abruptly = True
        logger.warning("Host is stopping abruptly.")

    def log_status(self, message: str, *args: object) -> None:
        if not self.lifetime.suppress_status_messages:
            logger.info(message, *args)


class HostBuilder:
    """Collects configuration and service callbacks, then builds a :class:`Host`."""

    def __init__(
        self,
        argv: Sequence[str] = (),
        *,
        settings_package: str | None = None,
        environment: str | None = None,
    ) -> None:
        self.argv: tuple[str, ...] = tuple(argv)
        self.settings_package = settings_package
        self.environment = environment
        self.configuration = Configuration()
        self.services = ServiceCollection()
        self.definitions: list[CommandNode] = []
        self._config_callbacks: list[Callable[[Configuration], None]] = []
        self._service_callbacks: list[Callable[[Configuration, ServiceCollection], None]] = []
        self._command_line_options: list[type] = []
        self._built = False

    def configure_app_configuration(
        self, callback: Callable[[Configuration], None],
    ) -> HostBuilder:
        self._config_callbacks.append(callback)
        return self

    def configure_services(
        self, callback: Callable[[Configuration, ServiceCollection], None],
    ) -> HostBuilder:
        self._service_callbacks.append(callback)
        return self

    def add_options(
        self,
        cls: type,
        section: str,
        *,
        bind_command_line: bool = False,
    ) -> HostBuilder:
        """Bind dataclass *cls* from *section* and register it as a singleton.

        With *bind_command_line*, parsed argument values whose names match
        fields of *cls* override the bound settings at dispatch time.
        """

        def register(config: Configuration, services: ServiceCollection) -> None:
            services.add_singleton(cls, config.bind(section, cls))

        if bind_command_line:
            self._command_line_options.append(cls)
        return self.configure_services(register)

    def register_definition(self, definition: CommandNode) -> None:
        """Record *definition* for lookup by command path.

        A :class:`CommandNode` subclass is also registered as a singleton
        under its own type.  Plain nodes share one type, so the node of
        the running command is provided per invocation scope instead.
        """
        self.definitions.append(definition)
        if type(definition) is not CommandNode:
            self.services.add_singleton(type(definition), definition)

    def build(self) -> Host:
        if self._built:
            raise RuntimeError("HostBuilder.build() may only be called once.")
        self._built = True

        self.configuration.merge(
            load_configuration(self.settings_package, self.environment)
        )
        for config_callback in self._config_callbacks:
            config_callback(self.configuration)
        for service_callback in self._service_callbacks:
            service_callback(self.configuration, self.services)

        self.services.add_singleton(CommandLineArguments, CommandLineArguments(self.argv))
        host = Host(self.configuration, self.services, self.argv, self.definitions)
        host.services.add_singleton(_CommandLineOptionTypes, _CommandLineOptionTypes(
            tuple(self._command_line_options),
        ))
        return host


@dataclass(frozen=True, slots=True)
class _CommandLineOptionTypes:
    types: tuple[type, ...]


def apply_command_line(host: Host, values: dict[str, Any]) -> None:
    """Override bound option singletons with matching parsed values."""
    registered = host.services.singleton(_CommandLineOptionTypes)
    if registered is None:
        return
    for cls in registered.types:
        current = host.services.singleton(cls)
        if current is None or not is_dataclass(current):
            continue
        names = {f.name for f in fields(current)}
        overrides = {
            k: v for k, v in values.items() if k in names and v is not None
        }
        if overrides:
            host.services.add_singleton(cls, replace(current, **overrides))


def create_default_builder(
    argv: Sequence[str] = (),
    settings_package: str | None = None,
) -> HostBuilder:
    """Builder with embedded settings, env overrides and lifetime options."""
    builder = HostBuilder(argv, settings_package=settings_package)
    builder.add_options(LifetimeOptions, "Lifetime")
    return builder
