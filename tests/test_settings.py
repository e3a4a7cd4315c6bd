"""Tests for layered settings (infra/settings.py).

Coverage:
* Case-insensitive, ``:``-separated access.
* Dataclass binding with scalar coercion.
* Embedded package files, environment-specific overrides, and
  ``CMDHOST_`` environment variables, in that precedence order.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from pathlib import Path

import pytest

from cmdhost.exceptions import SettingsLoadError
from cmdhost.infra.settings import (
    Configuration,
    coerce,
    environment_name,
    load_configuration,
    load_environment_settings,
    load_package_settings,
)


@dataclass
class RetryOptions:
    attempts: int = 1
    backoff: float = 0.5
    enabled: bool = False
    label: str = "default"


# ---------------------------------------------------------------------------
# Configuration access
# ---------------------------------------------------------------------------

class TestConfiguration:
    def test_get_value_is_case_insensitive(self) -> None:
        config = Configuration({"Logging": {"LogLevel": {"Default": "Debug"}}})
        assert config.get_value("logging:loglevel:DEFAULT") == "Debug"

    def test_missing_path_returns_default(self) -> None:
        config = Configuration({"A": 1})
        assert config.get_value("A:B", "fallback") == "fallback"
        assert config.get_value("Z") is None

    def test_section_of_missing_path_is_empty(self) -> None:
        assert len(Configuration().section("Nope")) == 0

    def test_merge_overrides_nested_values(self) -> None:
        config = Configuration({"Greeting": {"Subject": "World", "Loud": "no"}})
        config.merge({"greeting": {"subject": "Ada"}})
        assert config.get_value("Greeting:Subject") == "Ada"
        assert config.get_value("Greeting:Loud") == "no"

    def test_set_value_creates_sections(self) -> None:
        config = Configuration()
        config.set_value("A:B:C", 3)
        assert config.to_dict() == {"A": {"B": {"C": 3}}}


# ---------------------------------------------------------------------------
# Binding
# ---------------------------------------------------------------------------

class TestBind:
    def test_bind_coerces_strings(self) -> None:
        config = Configuration(
            {"Retry": {"Attempts": "3", "Backoff": "1.5", "Enabled": "true"}}
        )
        options = config.bind("Retry", RetryOptions)
        assert options == RetryOptions(attempts=3, backoff=1.5, enabled=True)

    def test_bind_ignores_unknown_and_keeps_defaults(self) -> None:
        config = Configuration({"Retry": {"Unknown": "x", "LABEL": "custom"}})
        assert config.bind("Retry", RetryOptions) == RetryOptions(label="custom")

    def test_bind_missing_section_gives_defaults(self) -> None:
        assert Configuration().bind("Retry", RetryOptions) == RetryOptions()

    def test_bind_requires_dataclass(self) -> None:
        with pytest.raises(TypeError):
            Configuration().bind("Retry", dict)

    def test_invalid_bool_raises(self) -> None:
        with pytest.raises(SettingsLoadError):
            coerce("perhaps", bool)

    def test_invalid_int_raises(self) -> None:
        with pytest.raises(SettingsLoadError):
            coerce("three", int)

    def test_non_string_values_pass_through(self) -> None:
        assert coerce(5, int) == 5
        assert coerce("text", str) == "text"


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

class TestSources:
    def test_environment_name_default(self) -> None:
        assert environment_name({}) == "Production"
        assert environment_name({"CMDHOST_ENVIRONMENT": "Development"}) == "Development"

    def test_environment_variables_become_sections(self) -> None:
        environ = {
            "CMDHOST_LIFETIME__SUPPRESSSTATUSMESSAGES": "true",
            "CMDHOST_ENVIRONMENT": "Development",
            "UNRELATED": "x",
        }
        assert load_environment_settings(environ) == {
            "LIFETIME": {"SUPPRESSSTATUSMESSAGES": "true"},
        }

    def test_embedded_package_settings(self) -> None:
        data = load_package_settings("cmdhost.sample", "Production")
        assert data["Greeting"]["Subject"] == "World"
        assert data["Lifetime"]["SuppressStatusMessages"] is True

    def test_environment_file_overrides_base_file(self) -> None:
        data = load_package_settings("cmdhost.sample", "Development")
        assert data["Lifetime"]["SuppressStatusMessages"] is False
        assert data["Logging"]["LogLevel"]["Default"] == "Debug"
        assert data["Greeting"]["Subject"] == "World"

    def test_missing_package_yields_nothing(self) -> None:
        assert load_package_settings("cmdhost_no_such_package", "Production") == {}
        assert load_package_settings(None, "Production") == {}

    def test_environment_variables_take_precedence(self) -> None:
        config = load_configuration(
            "cmdhost.sample",
            environ={"CMDHOST_GREETING__SUBJECT": "Ada"},
        )
        assert config.get_value("Greeting:Subject") == "Ada"
        assert config.get_value("Environment") == "Production"

    def test_invalid_json_raises(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        package = tmp_path / "cmdhost_broken_settings"
        package.mkdir()
        (package / "__init__.py").write_text("", encoding="utf-8")
        (package / "appsettings.json").write_text("{not json", encoding="utf-8")
        monkeypatch.syspath_prepend(str(tmp_path))
        importlib.invalidate_caches()

        with pytest.raises(SettingsLoadError, match="Invalid settings file"):
            load_package_settings("cmdhost_broken_settings", "Production")
