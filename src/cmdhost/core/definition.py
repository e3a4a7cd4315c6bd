"""Command definition tree.

A :class:`CommandNode` pairs a command's identity with an optional run
operation and an ordered list of child nodes.  The tree is built once at
startup; the first configuration composition freezes it.

Example::

    root = CommandNode("tool", "Tool description.")
    greet = CommandNode("greet", "Say hello.", executor=GreetCommand)
    greet.add_argument("--subject", default="World")
    root.add_child(greet)

    apply = root.compose_configuration()
    apply(host_builder)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from cmdhost.core.cancellation import CancellationToken
from cmdhost.core.protocols import ScopeFactory
from cmdhost.core.resolver import RunMethodDescriptor, resolve_run_method
from cmdhost.exceptions import StructuralDefinitionError
from cmdhost.utils.describe import describe

logger = logging.getLogger(__name__)

ConfigureCallback = Callable[[Any], None]
"""Mutates the shared host builder (configuration and services)."""


class GroupExecutor:
    """Marker executor for command groups.

    Passing this class (or a subclass) as a node's executor declares the
    node a group explicitly.  Groups have no run operation.
    """


@dataclass(frozen=True, slots=True)
class ArgumentSpec:
    """One ``add_argument`` call recorded for the parser."""

    flags: tuple[str, ...]
    options: Mapping[str, Any] = field(default_factory=dict)


class CommandNode:
    """One command or command group in the definition tree.

    Parameters
    ----------
    name:
        Command name as typed on the command line.
    description:
        Help text.  When omitted, it is derived from *executor*.
    executor:
        The executor type.  ``None`` or a :class:`GroupExecutor` subclass
        makes the node a group.  Resolution happens here, eagerly, so
        wiring errors surface before any input is parsed.
    configure:
        Optional callback applied to the host builder during composition.
    scope_factory:
        Overrides where instance executors get their per-invocation
        instance.  Normally the host is attached at dispatch time.
    """

    def __init__(
        self,
        name: str,
        description: str | None = None,
        *,
        executor: type | None = None,
        configure: ConfigureCallback | None = None,
        scope_factory: ScopeFactory | None = None,
    ) -> None:
        if not name:
            raise StructuralDefinitionError("A command node needs a name.")
        self.name: str = name
        self.executor: type | None = executor
        self.description: str = (
            description if description is not None else describe(executor)
        )
        self.configure_callback: ConfigureCallback | None = configure
        self.arguments: list[ArgumentSpec] = []
        self.parent: CommandNode | None = None
        self._children: list[CommandNode] = []
        self._lookup: dict[str, CommandNode] = {}
        self._frozen: bool = False
        self._scope_factory: ScopeFactory | None = scope_factory

        self.handler: RunMethodDescriptor | None = None
        if executor is not None and not issubclass(executor, GroupExecutor):
            self.handler = resolve_run_method(
                executor, self._current_scope_factory, definition=self,
            )

    def __repr__(self) -> str:
        kind = "group" if self.is_group else "command"
        return f"<CommandNode {self.name!r} ({kind}, {len(self._children)} children)>"

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @property
    def is_group(self) -> bool:
        return self.handler is None

    @property
    def children(self) -> tuple[CommandNode, ...]:
        return tuple(self._children)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def add_child(self, child: CommandNode) -> CommandNode:
        """Append *child* and register its name for lookup.

        Returns *child* so calls can be chained while building.

        Raises
        ------
        StructuralDefinitionError
            If *child* already has a parent, is this node or one of its
            ancestors, shares a name with a sibling, or the tree has
            already been composed.
        """
        if self._frozen:
            raise StructuralDefinitionError(
                f"Cannot add '{child.name}' to '{self.name}': the command "
                "tree is frozen after configuration composition.",
            )
        if child.parent is not None:
            raise StructuralDefinitionError(
                f"Command '{child.name}' is already attached to "
                f"'{child.parent.name}'; a node has exactly one parent.",
            )
        if any(node is child for node in self.lineage()):
            raise StructuralDefinitionError(
                f"Adding '{child.name}' to '{self.name}' would create a cycle.",
            )
        key = child.name.casefold()
        if key in self._lookup:
            raise StructuralDefinitionError(
                f"Command '{self.name}' already has a sub-command named "
                f"'{child.name}'.",
            )
        child.parent = self
        self._children.append(child)
        self._lookup[key] = child
        return child

    def find_child(self, name: str) -> CommandNode | None:
        """Return the direct child registered under *name*, if any."""
        return self._lookup.get(name.casefold())

    def add_argument(self, *flags: str, **options: Any) -> CommandNode:
        """Record an ``argparse`` argument for this command."""
        if self._frozen:
            raise StructuralDefinitionError(
                f"Cannot add arguments to '{self.name}' after composition.",
            )
        self.arguments.append(ArgumentSpec(flags, dict(options)))
        return self

    def walk(self) -> Iterator[CommandNode]:
        """Yield this node and its descendants in pre-order."""
        stack: list[CommandNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node._children))

    def lineage(self) -> Iterator[CommandNode]:
        """Yield this node and then each ancestor up to the root."""
        node: CommandNode | None = self
        while node is not None:
            yield node
            node = node.parent

    @property
    def path(self) -> tuple[str, ...]:
        return tuple(node.name for node in reversed(list(self.lineage())))

    # ------------------------------------------------------------------
    # Composition and dispatch
    # ------------------------------------------------------------------

    def compose_configuration(self) -> Callable[[Any], None]:
        """Return one action applying every reachable configure callback.

        See :func:`cmdhost.core.composer.compose_configuration`.
        """
        from cmdhost.core.composer import compose_configuration

        return compose_configuration(self)

    def freeze(self) -> None:
        self._frozen = True

    def attach_scope_factory(self, scope_factory: ScopeFactory) -> None:
        """Use *scope_factory* for this node's future invocations."""
        self._scope_factory = scope_factory

    def _current_scope_factory(self) -> ScopeFactory:
        for node in self.lineage():
            if node._scope_factory is not None:
                return node._scope_factory
        raise StructuralDefinitionError(
            f"Command '{self.name}' needs an instance but no host scope "
            "factory is attached.",
            hint="Dispatch the command through a built host.",
        )

    async def invoke(
        self,
        cancel_token: CancellationToken,
        arguments: Mapping[str, Any] | None = None,
    ) -> int:
        """Run this node's operation and return its exit code.

        Raises
        ------
        StructuralDefinitionError
            If the node is a group.
        """
        if self.handler is None:
            raise StructuralDefinitionError(
                f"Command '{' '.join(self.path)}' is a group and cannot be run.",
                hint="Invoke one of its sub-commands instead.",
            )
        return await self.handler.bound_invoke(cancel_token, arguments)
