"""Custom exception hierarchy for cmdhost.

All exceptions raised by cmdhost itself inherit from
:class:`CmdHostError`.  Failures raised by the body of an executed
command are never wrapped; they propagate to the caller unchanged.

Hierarchy
---------
CmdHostError
├── DefinitionError
│   ├── StructuralDefinitionError
│   └── AmbiguousHandlerResolutionError
├── ConfigurationError
│   ├── ConfigurationCompositionError
│   └── SettingsLoadError
├── ServiceResolutionError
├── CancellationEscalation
└── OperationCanceledError
"""

from __future__ import annotations


class CmdHostError(Exception):
    """Base exception for all cmdhost errors.

    Every error condition detected by cmdhost maps to a subclass of this
    exception so that the CLI error boundary can render a clean message
    without leaking internal stack traces.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint: str | None = hint
        """Optional actionable guidance shown below the error message."""


# --- Command definitions ---------------------------------------------------

class DefinitionError(CmdHostError):
    """Raised when the command definition tree is wired incorrectly.

    Definition errors are programming errors, surfaced at setup time or at
    the dispatch boundary, and are never retried.
    """


class StructuralDefinitionError(DefinitionError):
    """Raised when a group node is asked to run, or a node gets two parents."""


class AmbiguousHandlerResolutionError(DefinitionError):
    """Raised when an executor has zero or several run-operation candidates."""


# --- Configuration ---------------------------------------------------------

class ConfigurationError(CmdHostError):
    """Raised when host configuration cannot be established."""


class ConfigurationCompositionError(ConfigurationError):
    """Raised when a node's configure callback fails during composition."""


class SettingsLoadError(ConfigurationError):
    """Raised when a settings file exists but cannot be parsed."""


# --- Hosting ---------------------------------------------------------------

class ServiceResolutionError(CmdHostError):
    """Raised when an invocation scope cannot construct a requested type."""


# --- Invocation outcome ----------------------------------------------------

class CancellationEscalation(CmdHostError):
    """Raised when a repeated interrupt forced the host to stop.

    This is not a programming error but a deliberate terminal outcome:
    the CLI boundary maps it to a cancellation exit status, distinct from
    both success and ordinary failure.
    """


class OperationCanceledError(CmdHostError):
    """Raised by a command that observed its cancellation token and gave up."""
