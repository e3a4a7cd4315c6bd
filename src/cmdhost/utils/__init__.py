"""Shared utilities — descriptions, logging setup, and cross-cutting concerns.

Rules
-----
* No business logic.
* No imports from ``core``, ``infra`` or ``cli``.
* Importable by any layer.
"""
