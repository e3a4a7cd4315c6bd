"""Command definitions of the sample application."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from cmdhost.cli import exit_codes
from cmdhost.core.cancellation import CancellationToken
from cmdhost.core.definition import CommandNode, GroupExecutor
from cmdhost.infra.host import HostBuilder

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GreetingOptions:
    """Bound from the ``Greeting`` settings section and ``--subject``."""

    subject: str = "World"


class SampleGroup(GroupExecutor):
    """Root group of the sample application."""


class GreetCommand:
    """Log a greeting for the configured subject."""

    def __init__(self, options: GreetingOptions) -> None:
        self._options = options

    async def run_async(self, cancel_token: CancellationToken) -> int:
        cancel_token.raise_if_cancellation_requested()
        logger.info("Hello %s from %s", self._options.subject, "run_async")
        return exit_codes.SUCCESS


class WaitCommand:
    """Wait until the timeout elapses or cancellation is requested."""

    @staticmethod
    async def run_async(cancel_token: CancellationToken, seconds: float = 30.0) -> int:
        try:
            await asyncio.wait_for(cancel_token.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            logger.info("Waited %.1f seconds", seconds)
            return exit_codes.SUCCESS
        logger.warning("Wait cancelled before %.1f seconds elapsed", seconds)
        return exit_codes.KEYBOARD_INTERRUPT


def _configure_greet(builder: HostBuilder) -> None:
    builder.add_options(GreetingOptions, "Greeting", bind_command_line=True)


def build_definition() -> CommandNode:
    """Build the sample's command tree."""
    root = CommandNode("cmdhost-sample", executor=SampleGroup)

    greet = root.add_child(
        CommandNode(
            "greet",
            "Greet a subject.",
            executor=GreetCommand,
            configure=_configure_greet,
        )
    )
    greet.add_argument(
        "-s",
        "--subject",
        metavar="NAME",
        default=None,
        help="The subject to greet.",
    )

    wait = root.add_child(
        CommandNode(
            "wait",
            "Wait until the timeout elapses or Ctrl+C is pressed.",
            executor=WaitCommand,
        )
    )
    wait.add_argument(
        "--seconds",
        type=float,
        default=30.0,
        help="How long to wait (default: %(default)s).",
    )
    return root
