"""cmdhost — hierarchical command definitions hosted on argparse.

Commands are declared as a tree of :class:`~cmdhost.core.definition.CommandNode`
objects.  Each node composes host configuration top-down, binds to exactly
one run operation of an executor type, and is dispatched through an
interrupt-aware escalation middleware.
"""

from cmdhost.core.cancellation import CancellationSource, CancellationToken
from cmdhost.core.definition import CommandNode, GroupExecutor
from cmdhost.version import __version__

__all__: list[str] = [
    "CancellationSource",
    "CancellationToken",
    "CommandNode",
    "GroupExecutor",
    "__version__",
]
