"""
Custom exception hierarchy for the registry mirror.

All exceptions inherit from RegError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class RegError(Exception):
    """Base exception for all registry mirror errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(RegError):
    """Raised when configuration is invalid or missing.

    Examples:
        - REG_EXECUTABLE points at nothing launchable
        - Invalid default view
    """

    pass


class ValidationError(RegError):
    """Raised when input validation fails, before any external call.

    Context should include:
        - field: The field that failed validation
        - value: The invalid value
        - expected: Description of what was expected
    """

    pass


class IllegalHiveError(ValidationError):
    """Raised when a key path does not start with a known hive."""

    pass


class RemoteHiveError(ValidationError):
    """Raised when a remote key path names a hive other than HKLM or HKU."""

    pass


class IllegalKeyError(ValidationError):
    """Raised when the segments below the hive are malformed."""

    pass


class IllegalViewError(ValidationError):
    """Raised when a view other than "32" or "64" is requested."""

    pass


class ExternalOperationError(RegError):
    """Raised when the external registry tool fails.

    Covers both launch failures (exit_code -1) and non-zero exits.

    Context should include:
        - command: The tool sub-command (QUERY, ADD, ...)
        - args: Arguments passed to the tool
    """

    def __init__(
        self,
        message: str,
        exit_code: int = -1,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.exit_code = exit_code

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.message!r}, "
            f"exit_code={self.exit_code!r}, context={self.context!r})"
        )
