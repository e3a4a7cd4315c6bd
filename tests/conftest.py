"""Shared pytest fixtures and configuration for the cmdhost test suite.

Guidelines
----------
* No real OS signals — interrupts are delivered through
  :class:`ManualInterruptChannel`.
* No dependency on the caller's ``CMDHOST_*`` environment.
* Async scenarios run through ``asyncio.run`` inside plain tests.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import pytest


class ManualInterruptChannel:
    """Interrupt channel driven by the test instead of the OS."""

    def __init__(self) -> None:
        self.listeners: list[Any] = []

    @property
    def listener_count(self) -> int:
        return len(self.listeners)

    def add_listener(self, listener: Any) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: Any) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def fire(self) -> None:
        for listener in list(self.listeners):
            listener()


class RecordingScope:
    def __init__(self, factory: RecordingScopeFactory) -> None:
        self._factory = factory
        self.provided: dict[Any, Any] = {}

    def provide(self, key: Any, instance: Any) -> None:
        self.provided[key] = instance
        self._factory.provided.append((key, instance))

    def get_or_create(self, cls: type) -> Any:
        if cls in self.provided:
            return self.provided[cls]
        instance = cls()
        self._factory.created.append(instance)
        return instance


class RecordingScopeFactory:
    """Scope factory that constructs executors directly and counts scopes."""

    def __init__(self) -> None:
        self.created: list[Any] = []
        self.provided: list[tuple[Any, Any]] = []
        self.opened: int = 0
        self.closed: int = 0

    @property
    def open_scopes(self) -> int:
        return self.opened - self.closed

    @contextmanager
    def create_scope(self) -> Iterator[RecordingScope]:
        self.opened += 1
        try:
            yield RecordingScope(self)
        finally:
            self.closed += 1


class FakeHost(RecordingScopeFactory):
    """Host runtime double recording forced stops."""

    def __init__(self) -> None:
        super().__init__()
        self.force_stop_calls: int = 0

    def force_stop(self) -> None:
        self.force_stop_calls += 1


@pytest.fixture()
def channel() -> ManualInterruptChannel:
    return ManualInterruptChannel()


@pytest.fixture()
def scope_factory() -> RecordingScopeFactory:
    return RecordingScopeFactory()


@pytest.fixture()
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.upper().startswith("CMDHOST_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
