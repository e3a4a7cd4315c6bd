"""Configuration composer: fold a command tree into one configure action.

The returned action applies, in pre-order depth-first order, every
reachable node's configure callback to the host builder it is given.
Ancestors therefore run before descendants, and a child may observe or
override what an ancestor established.

Guarantees
----------
* Each reachable node contributes exactly once.
* Composing freezes the tree: no children or arguments may be added
  afterwards.
* A failing callback aborts immediately with
  :class:`~cmdhost.exceptions.ConfigurationCompositionError`; the
  remaining callbacks do not run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from cmdhost.exceptions import ConfigurationCompositionError

if TYPE_CHECKING:
    from cmdhost.core.definition import CommandNode

logger = logging.getLogger(__name__)


def compose_configuration(root: CommandNode) -> Callable[[Any], None]:
    """Return a single action applying the tree's configure callbacks.

    The traversal order is fixed when this function is called; the
    builder is threaded through the returned action explicitly.
    """
    nodes = list(root.walk())
    for node in nodes:
        node.freeze()

    def apply(builder: Any) -> None:
        for node in nodes:
            register = getattr(builder, "register_definition", None)
            if register is not None:
                register(node)
            callback = node.configure_callback
            if callback is None:
                continue
            logger.debug("Configuring command %s", " ".join(node.path))
            try:
                callback(builder)
            except Exception as exc:
                raise ConfigurationCompositionError(
                    f"Configuring command '{' '.join(node.path)}' failed: {exc}",
                ) from exc

    return apply
