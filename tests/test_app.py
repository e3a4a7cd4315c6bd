"""Tests for the CLI pipeline and error boundary (cli/app.py).

Coverage:
* ``main`` end-to-end with the sample tree.
* ``dispatch`` cooperative and escalated outcomes, driven by a manual
  interrupt channel.
* Exit-code mapping in ``run_with_boundary``.
"""

from __future__ import annotations

import asyncio
import threading

import pytest

from cmdhost.cli import app, exit_codes
from cmdhost.cli.app import dispatch, main, run_definition, run_with_boundary
from cmdhost.core.cancellation import CancellationToken
from cmdhost.core.definition import CommandNode, GroupExecutor
from cmdhost.exceptions import (
    AmbiguousHandlerResolutionError,
    CancellationEscalation,
    CmdHostError,
    ConfigurationCompositionError,
    StructuralDefinitionError,
)
from cmdhost.infra.host import Host, HostBuilder, ServiceCollection
from cmdhost.infra.settings import Configuration


class Root(GroupExecutor):
    pass


class ExitWith:
    @staticmethod
    def run(code: int) -> int:
        return code


class Broken:
    @staticmethod
    async def run_async(cancel_token: CancellationToken) -> int:
        raise ValueError("body failure")


class Counter:
    """Instance executor resolved through the host scope."""

    def __init__(self, configuration: Configuration) -> None:
        self._configuration = configuration

    def run(self) -> int:
        return int(self._configuration.get_value("Counter:Exit", 0))


class WhoAmI:
    """Instance executor reporting the command it runs for."""

    def __init__(self, node: CommandNode) -> None:
        self._node = node

    def run(self) -> int:
        return len(self._node.name)


def _tree() -> CommandNode:
    root = CommandNode("tool", "Tool.", executor=Root)
    exit_with = root.add_child(CommandNode("exit", "Exit.", executor=ExitWith))
    exit_with.add_argument("code", type=int)
    root.add_child(CommandNode("broken", "Broken.", executor=Broken))
    root.add_child(CommandNode("count", "Count.", executor=Counter))
    return root


def _host() -> Host:
    return Host(Configuration(), ServiceCollection())


# ---------------------------------------------------------------------------
# main
# ---------------------------------------------------------------------------

class TestMain:
    def test_no_arguments_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([]) == exit_codes.SUCCESS
        assert "greet" in capsys.readouterr().out

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert "cmdhost-sample" in capsys.readouterr().out

    def test_greet(self) -> None:
        assert main(["greet", "--subject", "Ada"]) == exit_codes.SUCCESS

    def test_wait_times_out(self) -> None:
        assert main(["wait", "--seconds", "0.01"]) == exit_codes.SUCCESS


# ---------------------------------------------------------------------------
# run_definition
# ---------------------------------------------------------------------------

class TestRunDefinition:
    def test_exit_code_passes_through(self) -> None:
        assert run_definition(_tree(), ["exit", "7"]) == 7

    def test_instance_executor_uses_host_services(self) -> None:
        def builder(argv):
            return HostBuilder(argv).configure_app_configuration(
                lambda config: config.set_value("Counter:Exit", 5)
            )

        assert run_definition(_tree(), ["count"], create_host_builder=builder) == 5

    def test_executor_receives_its_own_node(self) -> None:
        root = CommandNode("tool", "Tool.", executor=Root)
        root.add_child(CommandNode("ab", "Short.", executor=WhoAmI))
        root.add_child(CommandNode("abcd", "Long.", executor=WhoAmI))

        assert run_definition(root, ["ab"]) == 2

    def test_body_exception_propagates(self) -> None:
        with pytest.raises(ValueError, match="body failure"):
            run_definition(_tree(), ["broken"])

    def test_composition_fails_before_parsing(self) -> None:
        def explode(builder) -> None:
            raise RuntimeError("bad wiring")

        root = CommandNode("tool", executor=Root)
        root.add_child(CommandNode("x", "X.", executor=ExitWith, configure=explode))
        with pytest.raises(ConfigurationCompositionError):
            run_definition(root, ["--definitely-not-an-option"])

    def test_ambiguous_executor_fails_at_definition(self) -> None:
        class Twice:
            def run_async(self) -> int:
                return 0

            def RunAsync(self) -> int:
                return 0

        with pytest.raises(AmbiguousHandlerResolutionError):
            CommandNode("twice", executor=Twice)


# ---------------------------------------------------------------------------
# dispatch
# ---------------------------------------------------------------------------

class TestDispatch:
    def test_cooperative_stop(self, channel) -> None:
        class Cooperative:
            @staticmethod
            async def run_async(cancel_token: CancellationToken) -> int:
                channel.fire()
                await cancel_token.wait()
                return exit_codes.KEYBOARD_INTERRUPT

        host = _host()
        node = CommandNode("coop", "Coop.", executor=Cooperative)
        code = asyncio.run(dispatch(host, node, interrupts=channel))

        assert code == exit_codes.KEYBOARD_INTERRUPT
        assert not host.stopped_abruptly
        assert channel.listener_count == 0

    def test_second_interrupt_escalates(self, channel) -> None:
        class Stubborn:
            @staticmethod
            async def run_async(cancel_token: CancellationToken) -> int:
                channel.fire()
                channel.fire()
                await asyncio.Event().wait()
                return exit_codes.SUCCESS

        host = _host()
        node = CommandNode("stubborn", "Stubborn.", executor=Stubborn)
        with pytest.raises(CancellationEscalation):
            asyncio.run(dispatch(host, node, interrupts=channel))

        assert host.stopped_abruptly
        assert channel.listener_count == 0

    def test_blocking_body_still_escalates(self, channel) -> None:
        release = threading.Event()

        class Blocking:
            @staticmethod
            def run(cancel_token: CancellationToken) -> int:
                release.wait(timeout=5)
                return exit_codes.SUCCESS

        async def scenario() -> int:
            task = asyncio.ensure_future(dispatch(host, node, interrupts=channel))
            while channel.listener_count < 2:
                await asyncio.sleep(0)
            channel.fire()
            channel.fire()
            try:
                return await task
            finally:
                release.set()

        host = _host()
        node = CommandNode("blocking", "Blocking.", executor=Blocking)
        try:
            with pytest.raises(CancellationEscalation):
                asyncio.run(scenario())
        finally:
            release.set()

        assert host.stopped_abruptly
        assert channel.listener_count == 0

    def test_group_cannot_be_dispatched(self, channel) -> None:
        with pytest.raises(StructuralDefinitionError, match="group"):
            asyncio.run(dispatch(_host(), _tree(), interrupts=channel))
        assert channel.listener_count == 0


# ---------------------------------------------------------------------------
# Error boundary
# ---------------------------------------------------------------------------

class TestBoundary:
    def _code(self, entry) -> int:
        with pytest.raises(SystemExit) as exc_info:
            run_with_boundary(entry)
        return exc_info.value.code

    def test_success(self) -> None:
        assert self._code(lambda: 0) == exit_codes.SUCCESS

    def test_definition_error(self, capsys: pytest.CaptureFixture[str]) -> None:
        def entry() -> int:
            raise StructuralDefinitionError("bad tree", hint="fix it")

        assert self._code(entry) == exit_codes.DEFINITION_ERROR
        err = capsys.readouterr().err
        assert "bad tree" in err
        assert "fix it" in err

    def test_composition_error(self) -> None:
        def entry() -> int:
            raise ConfigurationCompositionError("callback failed")

        assert self._code(entry) == exit_codes.DEFINITION_ERROR

    def test_known_error(self) -> None:
        def entry() -> int:
            raise CmdHostError("known")

        assert self._code(entry) == exit_codes.GENERAL_ERROR

    def test_keyboard_interrupt(self) -> None:
        def entry() -> int:
            raise KeyboardInterrupt

        assert self._code(entry) == exit_codes.KEYBOARD_INTERRUPT

    def test_usage_error_passes_through(self) -> None:
        assert self._code(lambda: main(["nope"])) == exit_codes.USAGE_ERROR

    def test_unexpected_error(self, capsys: pytest.CaptureFixture[str]) -> None:
        def entry() -> int:
            raise ValueError("surprise")

        assert self._code(entry) == exit_codes.UNEXPECTED_ERROR
        assert "ValueError: surprise" in capsys.readouterr().err

    def test_escalation_exits_immediately(self, monkeypatch: pytest.MonkeyPatch) -> None:
        codes: list[int] = []

        def fake_exit(code: int) -> None:
            codes.append(code)
            raise SystemExit(code)

        monkeypatch.setattr(app.os, "_exit", fake_exit)

        def entry() -> int:
            raise CancellationEscalation("forced")

        assert self._code(entry) == exit_codes.ESCALATED
        assert codes == [exit_codes.ESCALATED]
