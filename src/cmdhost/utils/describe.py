"""Default help text for commands.

The description of an executor is, in order of preference:

1. the ``Summary`` of the installed distribution that ships the
   executor's top-level package,
2. the first line of the executor's defining module docstring,
3. the defining module's dotted name.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from importlib import metadata


@lru_cache(maxsize=None)
def distribution_summary(package: str) -> str:
    """Return the summary of the distribution providing *package*, or ``""``."""
    try:
        distributions = metadata.packages_distributions().get(package, [])
    except Exception:  # noqa: BLE001
        return ""
    for dist_name in distributions:
        try:
            summary = metadata.metadata(dist_name).get("Summary")
        except metadata.PackageNotFoundError:
            continue
        if summary and summary.strip() and summary.strip() != "UNKNOWN":
            return summary.strip()
    return ""


def describe(obj: object | None) -> str:
    """Return a one-line description for *obj* (usually an executor type)."""
    if obj is None:
        return ""
    module_name: str = getattr(obj, "__module__", None) or getattr(obj, "__name__", "")
    if not module_name:
        return ""

    summary = distribution_summary(module_name.split(".", 1)[0])
    if summary:
        return summary

    module = sys.modules.get(module_name)
    doc = (getattr(module, "__doc__", None) or "").strip()
    if doc:
        return doc.splitlines()[0].strip()
    return module_name
