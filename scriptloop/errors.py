"""Error taxonomy for the host/engine bridge.

Every error raised to host callers derives from :class:`ScriptLoopError`,
which carries a message, optional details and the CLI exit code used when
the error reaches the command line.
"""

from __future__ import annotations

from typing import Any

from scriptloop.cli.exit_codes import ExitCode

NO_EVENT_LOOP_MESSAGE = "{engine} cannot find a running {host} event-loop to make asynchronous calls."


class ScriptLoopError(Exception):
    """Base exception for ScriptLoop.

    Attributes:
        message: Error message
        exit_code: Exit code to use when exiting
        details: Optional dictionary of additional error details
    """

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(ScriptLoopError):
    """Raised for unreadable or invalid configuration."""

    exit_code = ExitCode.CONFIGURATION_ERROR


class NoEventLoopError(ScriptLoopError, RuntimeError):
    """An asynchronous operation was attempted outside a running event loop.

    Raised synchronously by ``setTimeout``/``clearTimeout``, by promise
    construction and by every awaitable coercion. Never retried.
    """

    exit_code = ExitCode.NO_EVENT_LOOP

    def __init__(self, engine_name: str = "ScriptLoop", host_name: str = "Python") -> None:
        super().__init__(NO_EVENT_LOOP_MESSAGE.format(engine=engine_name, host=host_name))


class AlreadyConsumedError(ScriptLoopError, RuntimeError):
    """A single-use host coroutine was coerced a second time."""

    exit_code = ExitCode.ALREADY_CONSUMED


class MarshaledScriptError(ScriptLoopError):
    """An engine-thrown value rendered as a host exception.

    Attributes:
        value: The raw engine value that was thrown (error object or primitive)
    """

    exit_code = ExitCode.SCRIPT_ERROR

    def __init__(self, message: str, value: Any = None) -> None:
        super().__init__(message)
        self.value = value


class UnsupportedValueError(ScriptLoopError, TypeError):
    """A value cannot be represented on the other side of the boundary.

    The original value is kept in :attr:`value` so nothing is dropped
    silently.
    """

    exit_code = ExitCode.UNSUPPORTED_VALUE

    def __init__(self, value: Any, reason: str | None = None) -> None:
        message = reason or f"{type(value).__name__} value cannot be converted across the engine boundary"
        super().__init__(message, details={"type": type(value).__name__})
        self.value = value
