"""Allow ``python -m cmdhost`` invocation.

This module delegates to the CLI error-boundary entry point of the
bundled sample application so that ``python -m cmdhost`` behaves
identically to the ``cmdhost-sample`` console script.
"""

from __future__ import annotations

from cmdhost.cli.app import cli

if __name__ == "__main__":
    cli()
