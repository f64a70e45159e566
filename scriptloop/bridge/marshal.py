"""
Exception marshaling between host exceptions and engine thrown values.

Host exceptions become engine error objects whose message names the host
exception type, so engine ``catch`` blocks can match on it. Engine thrown
values become :class:`MarshaledScriptError`, whatever was thrown.
"""

from __future__ import annotations

import logging
from typing import Any, NoReturn

from scriptloop.engine.values import NULL, UNDEFINED, EngineError, ScriptThrow, is_primitive
from scriptloop.errors import MarshaledScriptError, UnsupportedValueError

logger = logging.getLogger(__name__)


class MarshaledHostError(EngineError):
    """Engine error object wrapping a host exception.

    The message reads ``"<host> <ExceptionType>: <str(exception)>"``, for
    example ``"Python AttributeError: 'list' object has no attribute 'x'"``.
    """

    def __init__(self, exception: BaseException, host_name: str = "Python"):
        super().__init__(f"{host_name} {type(exception).__name__}: {exception}")
        self.host_exception = exception


class ExceptionMarshal:
    """Converts error values between the two runtimes."""

    def __init__(self, host_name: str = "Python"):
        self.host_name = host_name

    def host_to_engine(self, exception: BaseException) -> Any:
        """Return the engine value to throw for a host exception."""
        if isinstance(exception, MarshaledScriptError):
            # An engine throw coming back through host code keeps its original value
            return exception.value
        return MarshaledHostError(exception, self.host_name)

    def engine_to_host(self, value: Any) -> Exception:
        """Return the host exception representing an engine thrown value.

        Error objects render with their file/line information, primitives
        render in their host form (``nan``, ``123.0``, ``anything``). Any other
        object yields :class:`UnsupportedValueError` carrying the value.
        """
        if isinstance(value, EngineError):
            error = MarshaledScriptError(value.render(), value=value)
            if isinstance(value, MarshaledHostError):
                error.__cause__ = value.host_exception
            return error
        if is_primitive(value):
            return MarshaledScriptError(self.render_primitive(value), value=value)
        logger.debug(f"Cannot marshal thrown {type(value).__name__} to a host exception")
        return UnsupportedValueError(
            value, f"thrown {type(value).__name__} cannot be represented as a host exception"
        )

    def reraise(self, thrown: ScriptThrow) -> NoReturn:
        """Raise the host form of an engine throw."""
        error = self.engine_to_host(thrown.value)
        raise error from error.__cause__

    @staticmethod
    def render_primitive(value: Any) -> str:
        if value is UNDEFINED or value is NULL:
            return str(None)
        if isinstance(value, (bool, str)):
            return value if isinstance(value, str) else str(value)
        # Engine numbers are doubles: 123 renders as 123.0, NaN as nan
        return str(float(value))
