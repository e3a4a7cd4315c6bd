"""Run-method resolution: bind an executor type to one runnable operation.

Resolution probes the executor type for a public attribute named
``run_async`` first and ``run`` second.  Names are compared ignoring
case and underscores, so ``RunAsync``, ``runasync`` and ``run_async``
are one and the same name.

Rules
-----
* The first probed name with at least one candidate wins.  Several
  candidates for that name are an error; the alias is NOT tried as a
  fallback in that case.
* ``staticmethod`` / ``classmethod`` candidates are called without an
  instance.  Any other function is an instance candidate: every call
  obtains a fresh instance from a new invocation scope and disposes of
  the scope before returning, on every exit path.
* Results are cached per executor type for as long as the type exists,
  so resolution happens once, at registration time.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import weakref
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from cmdhost.core.cancellation import CancellationToken
from cmdhost.core.protocols import BoundInvoke, ScopeFactory
from cmdhost.exceptions import (
    AmbiguousHandlerResolutionError,
    StructuralDefinitionError,
)

logger = logging.getLogger(__name__)

CANONICAL_NAME: str = "run_async"
ALIAS_NAME: str = "run"
TOKEN_PARAMETER: str = "cancel_token"


@dataclass(frozen=True, slots=True)
class RunMethodDescriptor:
    """The resolved binding of an executor type to its run operation."""

    executor_type: type
    """The type the operation was found on."""

    name: str
    """Actual attribute name of the operation (e.g. ``RunAsync``)."""

    is_static: bool
    """``True`` when no instance is needed to call the operation."""

    bound_invoke: BoundInvoke
    """``(cancel_token, arguments) -> exit code`` coroutine function."""

    async def __call__(
        self,
        cancel_token: CancellationToken,
        arguments: Mapping[str, Any] | None = None,
    ) -> int:
        return await self.bound_invoke(cancel_token, arguments)


# ---------------------------------------------------------------------------
# Candidate discovery
# ---------------------------------------------------------------------------

def _normalize(name: str) -> str:
    return name.replace("_", "").casefold()


def _candidates(executor_type: type, probe: str) -> list[tuple[str, Any]]:
    """Return ``(name, raw attribute)`` pairs whose name matches *probe*."""
    wanted = _normalize(probe)
    found: list[tuple[str, Any]] = []
    seen: set[str] = set()
    for klass in executor_type.__mro__:
        if klass is object:
            continue
        for name, raw in vars(klass).items():
            if name.startswith("_") or name in seen:
                continue
            seen.add(name)
            if _normalize(name) != wanted:
                continue
            if isinstance(raw, (staticmethod, classmethod)) or inspect.isfunction(raw):
                found.append((name, raw))
    return found


def _is_group_marker(executor_type: type) -> bool:
    # Imported lazily: definition imports this module.
    from cmdhost.core.definition import GroupExecutor

    return issubclass(executor_type, GroupExecutor)


# ---------------------------------------------------------------------------
# Argument binding
# ---------------------------------------------------------------------------

def _bind_arguments(
    func: Callable[..., Any],
    cancel_token: CancellationToken,
    arguments: Mapping[str, Any] | None,
) -> tuple[list[Any], dict[str, Any]]:
    """Map the token and parsed values onto *func*'s parameters."""
    values = dict(arguments or {})
    args: list[Any] = []
    kwargs: dict[str, Any] = {}
    for param in inspect.signature(func).parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        if param.name == TOKEN_PARAMETER or _is_token_annotation(param.annotation):
            value: Any = cancel_token
        elif param.name in values:
            value = values[param.name]
        elif param.default is not param.empty:
            continue
        else:
            raise StructuralDefinitionError(
                f"No value is available for required parameter "
                f"'{param.name}' of {getattr(func, '__qualname__', func)!r}.",
                hint="Declare a matching argument on the command node.",
            )
        if param.kind is param.POSITIONAL_ONLY:
            args.append(value)
        else:
            kwargs[param.name] = value
    return args, kwargs


def _is_token_annotation(annotation: Any) -> bool:
    if annotation is CancellationToken:
        return True
    # Postponed annotations arrive as strings.
    return isinstance(annotation, str) and annotation.rsplit(".", 1)[-1] == "CancellationToken"


async def _call(
    func: Callable[..., Any],
    cancel_token: CancellationToken,
    arguments: Mapping[str, Any] | None,
) -> int:
    args, kwargs = _bind_arguments(func, cancel_token, arguments)
    if inspect.iscoroutinefunction(func):
        result = await func(*args, **kwargs)
    else:
        # Blocking bodies run off the loop so escalation stays observable.
        result = await asyncio.to_thread(func, *args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
    return _exit_code(result)


def _exit_code(result: Any) -> int:
    if result is None:
        return 0
    return int(result)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

_resolved: weakref.WeakKeyDictionary[type, tuple[str, Any]] = weakref.WeakKeyDictionary()


def _lookup(executor_type: type) -> tuple[str, Any]:
    """Return the cached run candidate of *executor_type*, finding it once."""
    try:
        return _resolved[executor_type]
    except KeyError:
        pass
    found = _find(executor_type)
    _resolved[executor_type] = found
    return found


def _find(executor_type: type) -> tuple[str, Any]:
    if _is_group_marker(executor_type):
        raise StructuralDefinitionError(
            f"'{executor_type.__qualname__}' is a command group and has no "
            "run operation.",
        )

    for probe in (CANONICAL_NAME, ALIAS_NAME):
        found = _candidates(executor_type, probe)
        if not found:
            continue
        if len(found) > 1:
            names = ", ".join(name for name, _ in found)
            raise AmbiguousHandlerResolutionError(
                f"The type '{executor_type.__qualname__}' defines several "
                f"candidates for '{probe}': {names}.",
                hint="Keep exactly one public run method.",
            )
        logger.debug(
            "Resolved %s.%s", executor_type.__qualname__, found[0][0],
        )
        return found[0]

    raise AmbiguousHandlerResolutionError(
        f"The type '{executor_type.__qualname__}' does not define an "
        f"unambiguous method named either '{ALIAS_NAME}' or '{CANONICAL_NAME}'.",
        hint="Implement `async def run_async(self, cancel_token) -> int`.",
    )


def resolve_run_method(
    executor_type: type,
    scope_factory: Callable[[], ScopeFactory] | ScopeFactory | None = None,
    definition: Any = None,
) -> RunMethodDescriptor:
    """Resolve *executor_type* to a :class:`RunMethodDescriptor`.

    Parameters
    ----------
    executor_type:
        The class designated as the command's executor.
    scope_factory:
        Where instance candidates obtain their per-invocation instance.
        Either a :class:`ScopeFactory` or a zero-argument callable
        returning one; the callable form lets the host be supplied
        after resolution, when the host does not exist yet.
    definition:
        The command node being resolved.  Each invocation scope of an
        instance candidate provides it under every class of its MRO, so
        the executor can inject the node it runs for.

    Raises
    ------
    AmbiguousHandlerResolutionError
        When zero or several candidates exist.
    StructuralDefinitionError
        When *executor_type* is a group marker.
    """
    name, raw = _lookup(executor_type)

    if isinstance(raw, (staticmethod, classmethod)):
        func = getattr(executor_type, name)

        async def invoke_static(
            cancel_token: CancellationToken,
            arguments: Mapping[str, Any] | None = None,
        ) -> int:
            return await _call(func, cancel_token, arguments)

        return RunMethodDescriptor(executor_type, name, True, invoke_static)

    async def invoke_instance(
        cancel_token: CancellationToken,
        arguments: Mapping[str, Any] | None = None,
    ) -> int:
        factory = _scope_factory(scope_factory, executor_type)
        with factory.create_scope() as scope:
            if definition is not None:
                for key in type(definition).__mro__[:-1]:
                    scope.provide(key, definition)
            instance = scope.get_or_create(executor_type)
            return await _call(getattr(instance, name), cancel_token, arguments)

    return RunMethodDescriptor(executor_type, name, False, invoke_instance)


def _scope_factory(
    source: Callable[[], ScopeFactory] | ScopeFactory | None,
    executor_type: type,
) -> ScopeFactory:
    if source is None:
        raise StructuralDefinitionError(
            f"'{executor_type.__qualname__}' needs an instance but no host "
            "scope factory is available.",
            hint="Dispatch the command through a built host.",
        )
    if hasattr(source, "create_scope"):
        return source  # type: ignore[return-value]
    return source()  # type: ignore[operator]
