"""
Error taxonomy for sqlwarden.

Every per-call failure inherits from SqlWardenError and carries a
``kind`` so the tool boundary can report it without inspecting types.
The set of kinds is closed: see ERROR_KINDS.
"""

from __future__ import annotations

from typing import Dict, Iterable


class SqlWardenError(Exception):
    """Base exception for all per-call failures."""

    kind = "SqlWardenError"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(SqlWardenError, ValueError):
    """The SQL guard rejected the statement before any I/O."""

    kind = "ValidationError"


class EmptyStatementError(ValidationError):
    """No SQL text was supplied (argument shape, not a safety verdict)."""


class UnsafeStatementError(ValidationError):
    """The statement is not a single read-only SELECT."""


class ProfileNotFoundError(SqlWardenError, LookupError):
    """The requested profile name is not configured."""

    kind = "ProfileNotFoundError"

    def __init__(self, name: str, available: Iterable[str]):
        self.name = name
        self.available = sorted(available)
        super().__init__(
            f"Profile '{name}' was not found. "
            f"Available profiles: {', '.join(self.available)}"
        )


class UnsupportedParameterError(SqlWardenError, TypeError):
    """A parameter value (or name) cannot be bound."""

    kind = "UnsupportedParameterError"


class ConnectivityError(SqlWardenError):
    """The engine could not be reached or refused the login."""

    kind = "ConnectivityError"


class QueryTimeoutError(SqlWardenError):
    """The command exceeded its execution deadline."""

    kind = "TimeoutError"


class EngineError(SqlWardenError):
    """The engine rejected or failed the statement after it passed the guard."""

    kind = "EngineError"


class ConfigurationError(SqlWardenError):
    """Invalid profile configuration, raised at startup only."""

    kind = "ConfigurationError"


class QueryCancelled(Exception):
    """The caller cancelled the call. Not part of the reported taxonomy."""


ERROR_KINDS = (
    ValidationError.kind,
    ProfileNotFoundError.kind,
    UnsupportedParameterError.kind,
    ConnectivityError.kind,
    QueryTimeoutError.kind,
    EngineError.kind,
)
