"""Infrastructure: layered application settings.

Settings are assembled from, in increasing precedence:

1. ``appsettings.json`` shipped inside the application package,
2. ``appsettings.<Environment>.json`` from the same package,
3. ``CMDHOST_``-prefixed environment variables, where ``__`` separates
   section levels (``CMDHOST_LIFETIME__SUPPRESSSTATUSMESSAGES=true``).

Both files are optional.  Keys are matched case-insensitively; section
paths use ``:`` as separator (``"Logging:LogLevel"``).

Rules
-----
* Reading only: settings are never written back.
* No ``print()``.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from collections.abc import Iterator, Mapping
from importlib import resources
from typing import Any, TypeVar, get_type_hints

from cmdhost.exceptions import SettingsLoadError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENV_PREFIX: str = "CMDHOST_"
ENVIRONMENT_VARIABLE: str = "CMDHOST_ENVIRONMENT"
DEFAULT_ENVIRONMENT: str = "Production"
SETTINGS_FILE: str = "appsettings.json"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


# ---------------------------------------------------------------------------
# Configuration object
# ---------------------------------------------------------------------------

class Configuration(Mapping[str, Any]):
    """Case-insensitive, nested, read-mostly settings mapping."""

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = {}
        if data:
            self.merge(data)

    # Mapping protocol ---------------------------------------------------

    def __getitem__(self, key: str) -> Any:
        for name, value in self._data.items():
            if name.casefold() == key.casefold():
                return value
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Configuration({self._data!r})"

    # Access -------------------------------------------------------------

    def get_value(self, path: str, default: Any = None) -> Any:
        """Return the value at ``:``-separated *path*, or *default*."""
        node: Any = self._data
        for part in path.split(":"):
            if not isinstance(node, Mapping):
                return default
            match = _find_key(node, part)
            if match is None:
                return default
            node = node[match]
        return node

    def section(self, path: str) -> Configuration:
        """Return the sub-tree at *path* (empty when missing)."""
        value = self.get_value(path)
        return Configuration(value if isinstance(value, Mapping) else None)

    def bind(self, path: str, cls: type[T]) -> T:
        """Instantiate dataclass *cls* from the section at *path*.

        Keys match field names ignoring case and underscores; unknown
        keys are ignored and missing fields keep their defaults.
        """
        if not dataclasses.is_dataclass(cls):
            raise TypeError(f"{cls!r} is not a dataclass")
        section = self.section(path)
        hints = get_type_hints(cls)
        kwargs: dict[str, Any] = {}
        for fld in dataclasses.fields(cls):
            wanted = _squash(fld.name)
            key = next((k for k in section if _squash(k) == wanted), None)
            if key is None:
                continue
            kwargs[fld.name] = coerce(section[key], hints.get(fld.name, Any))
        return cls(**kwargs)

    # Mutation -----------------------------------------------------------

    def merge(self, data: Mapping[str, Any]) -> None:
        """Deep-merge *data* over the current values."""
        _deep_merge(self._data, data)

    def set_value(self, path: str, value: Any) -> None:
        parts = path.split(":")
        node = self._data
        for part in parts[:-1]:
            key = _find_key(node, part) or part
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[_find_key(node, parts[-1]) or parts[-1]] = value

    def to_dict(self) -> dict[str, Any]:
        return json.loads(json.dumps(self._data))


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------

def environment_name(environ: Mapping[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    return env.get(ENVIRONMENT_VARIABLE) or DEFAULT_ENVIRONMENT


def load_package_settings(package: str | None, environment: str) -> dict[str, Any]:
    """Read the optional JSON settings files embedded in *package*."""
    merged: dict[str, Any] = {}
    if not package:
        return merged
    try:
        root = resources.files(package)
    except ModuleNotFoundError:
        logger.debug("Settings package %s not importable", package)
        return merged

    for name in (SETTINGS_FILE, f"appsettings.{environment}.json"):
        resource = root / name
        if not resource.is_file():
            continue
        text = resource.read_text(encoding="utf-8")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SettingsLoadError(
                f"Invalid settings file {package}/{name}: {exc}",
                hint="Fix the JSON syntax or remove the file.",
            ) from exc
        if not isinstance(data, dict):
            raise SettingsLoadError(
                f"Settings file {package}/{name} must contain a JSON object.",
            )
        logger.debug("Loaded settings from %s/%s", package, name)
        _deep_merge(merged, data)
    return merged


def load_environment_settings(
    environ: Mapping[str, str] | None = None,
    prefix: str = ENV_PREFIX,
) -> dict[str, Any]:
    """Translate ``PREFIX_SECTION__KEY=value`` variables into nested dicts."""
    env = os.environ if environ is None else environ
    result = Configuration()
    for name, value in env.items():
        if not name.upper().startswith(prefix) or name.upper() == ENVIRONMENT_VARIABLE:
            continue
        path = name[len(prefix):].replace("__", ":")
        if path:
            result.set_value(path, value)
    return result.to_dict()


def load_configuration(
    package: str | None,
    environment: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> Configuration:
    """Assemble the full layered :class:`Configuration`."""
    env_name = environment or environment_name(environ)
    config = Configuration(load_package_settings(package, env_name))
    config.merge(load_environment_settings(environ))
    config.set_value("Environment", env_name)
    return config


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def coerce(value: Any, annotation: Any) -> Any:
    """Convert string *value* to the scalar type named by *annotation*."""
    target = _scalar_type(annotation)
    if target is None or not isinstance(value, str):
        return value
    if target is bool:
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise SettingsLoadError(f"Cannot interpret {value!r} as a boolean.")
    try:
        return target(value)
    except ValueError as exc:
        raise SettingsLoadError(
            f"Cannot interpret {value!r} as {target.__name__}.",
        ) from exc


def _scalar_type(annotation: Any) -> type | None:
    if annotation in (bool, int, float):
        return annotation
    for arg in getattr(annotation, "__args__", ()):
        if arg in (bool, int, float):
            return arg
    return None


def _squash(name: str) -> str:
    return name.replace("_", "").casefold()


def _find_key(mapping: Mapping[str, Any], key: str) -> str | None:
    for name in mapping:
        if name.casefold() == key.casefold():
            return name
    return None


def _deep_merge(target: dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        existing = _find_key(target, key)
        if (
            existing is not None
            and isinstance(target[existing], dict)
            and isinstance(value, Mapping)
        ):
            _deep_merge(target[existing], value)
            continue
        if existing is not None and existing != key:
            del target[existing]
        if isinstance(value, Mapping):
            target[key] = {}
            _deep_merge(target[key], value)
        else:
            target[key] = value
