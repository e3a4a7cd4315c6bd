"""CLI console helpers with optional Rich support.

This module intentionally avoids module-level imports of optional UI
dependencies so bootstrap paths (``--help``, ``--version``) remain
functional even when Rich is not installed.
"""

from __future__ import annotations

import re
import sys
from typing import Any

_MARKUP = re.compile(r"\[/?[a-z ]+\]")


def _load_rich_console_class() -> type[Any] | None:
	"""Return ``rich.console.Console`` or ``None`` when Rich is missing."""
	try:
		from rich.console import Console
	except ModuleNotFoundError:
		return None
	return Console


def get_rich_console() -> Any | None:
	"""Create a Rich console instance targeting stderr, if available."""
	console_class = _load_rich_console_class()
	if console_class is None:
		return None
	return console_class(stderr=True)


def strip_markup(text: str) -> str:
	"""Remove simple Rich markup tags such as ``[bold red]``."""
	return _MARKUP.sub("", text)


class _ConsoleProxy:
	"""Minimal ``print``-compatible proxy with Rich fallback."""

	def print(self, *objects: object) -> None:
		"""Render with Rich when available, else plain stderr print."""
		rich_console = get_rich_console()
		if rich_console is None:
			print(
				*(strip_markup(o) if isinstance(o, str) else o for o in objects),
				file=sys.stderr,
			)
			return
		rich_console.print(*objects)

	def flush(self) -> None:
		sys.stdout.flush()
		sys.stderr.flush()


console = _ConsoleProxy()
