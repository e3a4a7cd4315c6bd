"""Exit-code constants used by the CLI layer.

Centralised here so that every exit path uses a well-known, tested
value rather than magic integers scattered across the codebase.
"""

from __future__ import annotations

SUCCESS: int = 0
"""Clean exit — command completed without error."""

GENERAL_ERROR: int = 1
"""A known CmdHostError was caught. User-facing message was displayed."""

UNEXPECTED_ERROR: int = 2
"""An unhandled exception escaped all known error boundaries."""

USAGE_ERROR: int = 2
"""argparse rejected the command line (same value argparse uses).

Shares its value with :data:`UNEXPECTED_ERROR`; the message on stderr
tells the two apart.
"""

DEFINITION_ERROR: int = 3
"""The command tree is mis-wired; reported before any input is parsed."""

KEYBOARD_INTERRUPT: int = 130
"""User pressed Ctrl+C.  Follows POSIX convention (128 + SIGINT=2)."""

ESCALATED: int = KEYBOARD_INTERRUPT
"""A repeated interrupt forced the host to stop."""
