"""Cancellation escalation: force a stop on a repeated interrupt.

The first interrupt is handled cooperatively elsewhere: the host cancels
the invocation's token and the command may or may not notice.  This
middleware bounds the worst case.  While an invocation runs, a second
interrupt makes it ask the host for an abrupt stop and raise
:class:`~cmdhost.exceptions.CancellationEscalation` at once, without
waiting for the command.

State machine (one :class:`CancellationRace` per dispatch)::

    ARMED ──interrupt──▶ FIRST_SIGNAL_SEEN ──interrupt──▶ ESCALATED
      │                        │
      └──── invocation done ───┴──────────────────────▶ COMPLETED_NORMALLY

A dispatch whose token is already cancelled starts in
``FIRST_SIGNAL_SEEN``.  The interrupt listener is attached before the
invocation starts and detached on every way out.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable

from cmdhost.core.cancellation import CancellationSource, CancellationToken
from cmdhost.core.protocols import HostRuntime, InterruptChannel
from cmdhost.exceptions import CancellationEscalation

logger = logging.getLogger(__name__)

Invocation = Callable[[CancellationToken], Awaitable[int]]


class RaceState(enum.Enum):
    ARMED = "armed"
    FIRST_SIGNAL_SEEN = "first-signal-seen"
    COMPLETED_NORMALLY = "completed-normally"
    ESCALATED = "escalated"


class CancellationRace:
    """Per-dispatch state: counts interrupts and owns the repeat-cancel source."""

    def __init__(self, cancel_token: CancellationToken) -> None:
        self.state: RaceState = (
            RaceState.FIRST_SIGNAL_SEEN
            if cancel_token.is_cancellation_requested
            else RaceState.ARMED
        )
        self.repeat_cancel: CancellationSource = CancellationSource()
        self.transitions: list[RaceState] = [self.state]

    def on_interrupt(self) -> None:
        """Interrupt listener.  Ignored once the race has been decided."""
        if self.state is RaceState.ARMED:
            self._move(RaceState.FIRST_SIGNAL_SEEN)
        elif self.state is RaceState.FIRST_SIGNAL_SEEN:
            # Only the first repeat counts; escalation happens once.
            if not self.repeat_cancel.is_cancellation_requested:
                self.repeat_cancel.cancel()

    def _move(self, state: RaceState) -> None:
        self.state = state
        self.transitions.append(state)


class EscalationMiddleware:
    """Wraps the dispatch of a resolved handler.

    Parameters
    ----------
    interrupts:
        Process-wide interrupt channel.  At most one root invocation is
        expected to listen on it at a time.
    host:
        Runtime whose :meth:`~HostRuntime.force_stop` is called on
        escalation.
    """

    def __init__(self, interrupts: InterruptChannel, host: HostRuntime) -> None:
        self._interrupts = interrupts
        self._host = host
        self.last_race: CancellationRace | None = None

    async def invoke(self, invocation: Invocation, cancel_token: CancellationToken) -> int:
        """Run *invocation*, racing it against a repeated interrupt.

        Returns the invocation's exit code, or re-raises its exception,
        unchanged.

        Raises
        ------
        CancellationEscalation
            When a repeated interrupt won the race.
        """
        race = CancellationRace(cancel_token)
        self.last_race = race

        # Listener first, so no interrupt can slip in before arming.
        self._interrupts.add_listener(race.on_interrupt)
        try:
            work = asyncio.ensure_future(invocation(cancel_token))
            repeat = asyncio.ensure_future(race.repeat_cancel.token.wait())
            try:
                await asyncio.wait({work, repeat}, return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                work.cancel()
                raise
            finally:
                repeat.cancel()

            if work.done():
                race._move(RaceState.COMPLETED_NORMALLY)
                return work.result()

            race._move(RaceState.ESCALATED)
            logger.warning("Second interrupt received; forcing the host to stop.")
            self._host.force_stop()
            work.cancel()
            raise CancellationEscalation(
                "Command was forcibly stopped by a repeated interrupt.",
            )
        finally:
            self._interrupts.remove_listener(race.on_interrupt)
