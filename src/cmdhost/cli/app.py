"""CLI application pipeline and error boundary for cmdhost.

:func:`run_definition` drives one process run of a command tree::

    compose configuration → build host → parse → dispatch
    (escalation middleware) → exit code

:func:`cli` is the **sole error boundary**.  It catches
:class:`~cmdhost.exceptions.CmdHostError`, ``KeyboardInterrupt``, and any
unexpected ``Exception``, rendering user-friendly messages via Rich and
returning well-defined exit codes.

Architecture notes
------------------
* No business logic lives here; commands are defined as trees of
  :class:`~cmdhost.core.definition.CommandNode` elsewhere.
* This module is the only place that translates between the domain world
  and the OS process exit code.
"""

from __future__ import annotations

import asyncio
import os
import sys
from collections.abc import Callable, Coroutine, Mapping, Sequence
from typing import Any

from cmdhost.cli import exit_codes
from cmdhost.cli.console import console
from cmdhost.cli.parser import build_parser, parse_command_line
from cmdhost.core.cancellation import CancellationSource
from cmdhost.core.definition import CommandNode
from cmdhost.core.escalation import EscalationMiddleware
from cmdhost.core.protocols import InterruptChannel
from cmdhost.exceptions import (
    CancellationEscalation,
    CmdHostError,
    ConfigurationCompositionError,
    DefinitionError,
)
from cmdhost.infra.host import Host, HostBuilder, apply_command_line, create_default_builder
from cmdhost.infra.interrupts import SignalInterruptChannel
from cmdhost.utils.logging import setup_logging
from cmdhost.version import __version__

HostBuilderFactory = Callable[[Sequence[str]], HostBuilder]


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

async def dispatch(
    host: Host,
    node: CommandNode,
    arguments: Mapping[str, Any] | None = None,
    interrupts: InterruptChannel | None = None,
) -> int:
    """Run *node* under the escalation middleware and return its exit code.

    The first interrupt cancels the command's token cooperatively; a
    second one escalates to a forced stop.  When *interrupts* is
    ``None``, OS signals are routed for the duration of the call.
    """
    owned: SignalInterruptChannel | None = None
    if interrupts is None:
        owned = SignalInterruptChannel()
        owned.open()
        interrupts = owned

    source = CancellationSource()

    def request_stop() -> None:
        if not source.is_cancellation_requested:
            host.log_status("Application is shutting down...")
        source.cancel()

    interrupts.add_listener(request_stop)
    try:
        host.log_status("Application started. Press Ctrl+C to shut down.")
        middleware = EscalationMiddleware(interrupts, host)
        return await middleware.invoke(
            lambda token: node.invoke(token, arguments),
            source.token,
        )
    finally:
        interrupts.remove_listener(request_stop)
        if owned is not None:
            owned.close()


def run_until_complete(coro: Coroutine[Any, Any, int], host: Host) -> int:
    """Run *coro* on a fresh event loop.

    After a forced stop, the loop's executor is not joined: worker
    threads of an uncooperative command may never finish.
    """
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        try:
            if not host.stopped_abruptly:
                _cancel_pending(loop)
                loop.run_until_complete(loop.shutdown_asyncgens())
                loop.run_until_complete(loop.shutdown_default_executor())
        finally:
            loop.close()


def _cancel_pending(loop: asyncio.AbstractEventLoop) -> None:
    pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
    for task in pending:
        task.cancel()
    if pending:
        loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def run_definition(
    root: CommandNode,
    argv: Sequence[str] | None = None,
    *,
    create_host_builder: HostBuilderFactory | None = None,
    settings_package: str | None = None,
    version: str | None = None,
    interrupts: InterruptChannel | None = None,
) -> int:
    """Parse *argv* against *root* and execute the matched command.

    Parameters
    ----------
    root:
        The application's root command node.
    argv:
        Explicit argument list.  When ``None`` (default), ``sys.argv[1:]``
        is used.
    create_host_builder:
        Builder factory receiving *argv*.  Defaults to
        :func:`~cmdhost.infra.host.create_default_builder` reading
        embedded settings from *settings_package*.
    version:
        Adds ``-V/--version`` to the root parser when given.

    Returns
    -------
    int
        OS process exit code.
    """
    args = list(sys.argv[1:] if argv is None else argv)

    configure = root.compose_configuration()
    parser = build_parser(root, version=version)

    if not args and root.is_group:
        parser.print_help()
        return exit_codes.SUCCESS

    if create_host_builder is None:
        builder = create_default_builder(args, settings_package)
    else:
        builder = create_host_builder(args)
    configure(builder)
    host = builder.build()
    setup_logging(_configured_level(host))

    node, arguments = parse_command_line(parser, args)
    apply_command_line(host, arguments)
    root.attach_scope_factory(host)

    return run_until_complete(dispatch(host, node, arguments, interrupts), host)


def _configured_level(host: Host) -> Any:
    level = host.configuration.get_value("Logging:LogLevel")
    if isinstance(level, Mapping):
        level = next((v for k, v in level.items() if k.casefold() == "default"), None)
    return level


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    """Run the bundled sample application.

    Accepting *argv* enables deterministic testing without
    monkeypatching.
    """
    from cmdhost.sample import SETTINGS_PACKAGE, build_definition

    root = build_definition()
    return run_definition(
        root,
        argv,
        settings_package=SETTINGS_PACKAGE,
        version=__version__,
    )


# ---------------------------------------------------------------------------
# Script-level error boundary
# ---------------------------------------------------------------------------

def run_with_boundary(entry: Callable[[], int]) -> None:
    """Call *entry* and exit the process with a well-defined code.

    This function guarantees the process never exits with a raw stack
    trace during normal usage.
    """
    try:
        code = entry()
        sys.exit(code)
    except CancellationEscalation as exc:
        console.print(f"\n[bold yellow]Forced stop:[/bold yellow] {exc}")
        console.flush()
        # Skip interpreter shutdown: it would join stuck worker threads.
        os._exit(exit_codes.ESCALATED)
    except (DefinitionError, ConfigurationCompositionError) as exc:
        console.print(f"[bold red]Definition error:[/bold red] {exc}")
        if exc.hint:
            console.print(f"[yellow]Hint:[/yellow] {exc.hint}")
        sys.exit(exit_codes.DEFINITION_ERROR)
    except CmdHostError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        if exc.hint:
            console.print(f"[yellow]Hint:[/yellow] {exc.hint}")
        sys.exit(exit_codes.GENERAL_ERROR)
    except KeyboardInterrupt:
        console.print("\n[yellow]Aborted by user.[/yellow]")
        sys.exit(exit_codes.KEYBOARD_INTERRUPT)
    except Exception as exc:  # noqa: BLE001
        console.print(
            "[bold red]Unexpected error.[/bold red] "
            "Please report this issue.\n"
            f"  {type(exc).__name__}: {exc}"
        )
        sys.exit(exit_codes.UNEXPECTED_ERROR)


def cli() -> None:
    """Top-level error boundary invoked by the console-script entry point."""
    run_with_boundary(main)
