"""Translate a command definition tree into an ``argparse`` parser.

Each node becomes a (sub-)parser carrying the node itself as a default,
so the deepest matched command is known after parsing.  Nodes with
children require a sub-command: selecting a group alone is a usage
error reported by argparse, never a dispatch.
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from typing import Any

from cmdhost.core.definition import CommandNode

NODE_KEY = "_cmdhost_node"
_COMMAND_KEY = "_cmdhost_command_{depth}"


def build_parser(root: CommandNode, *, version: str | None = None) -> argparse.ArgumentParser:
    """Construct the parser for *root* and all of its descendants."""
    parser = argparse.ArgumentParser(prog=root.name, description=root.description or None)
    if version is not None:
        parser.add_argument(
            "-V",
            "--version",
            action="version",
            version=f"%(prog)s {version}",
        )
    _populate(parser, root, depth=0)
    return parser


def _populate(parser: argparse.ArgumentParser, node: CommandNode, depth: int) -> None:
    for spec in node.arguments:
        parser.add_argument(*spec.flags, **dict(spec.options))
    parser.set_defaults(**{NODE_KEY: node})

    if not node.children:
        return
    subparsers = parser.add_subparsers(
        title="commands",
        dest=_COMMAND_KEY.format(depth=depth),
        metavar="COMMAND",
        required=True,
    )
    for child in node.children:
        summary = child.description.splitlines()[0] if child.description else None
        sub = subparsers.add_parser(
            child.name,
            help=summary,
            description=child.description or None,
        )
        _populate(sub, child, depth + 1)


def parse_command_line(
    parser: argparse.ArgumentParser,
    argv: Sequence[str],
) -> tuple[CommandNode, dict[str, Any]]:
    """Parse *argv*; return the matched node and its argument values.

    Raises ``SystemExit`` on usage errors, like ``argparse`` itself.
    """
    namespace = parser.parse_args(list(argv))
    values = vars(namespace)
    node: CommandNode = values.pop(NODE_KEY)
    arguments = {k: v for k, v in values.items() if not k.startswith("_cmdhost_")}
    return node, arguments
