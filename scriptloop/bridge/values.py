"""
Generic value conversion across the boundary.

Primitives map onto each other (engine numbers are always floats), host
awaitables and engine promises go through :mod:`scriptloop.bridge.coercion`,
and callables are wrapped so either runtime can invoke the other's
functions with its own calling convention.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Sequence

from scriptloop.engine.promise import EnginePromise
from scriptloop.engine.runtime import ScriptEngine
from scriptloop.engine.values import (
    NULL,
    UNDEFINED,
    EngineFunction,
    EngineObject,
    ScriptThrow,
)
from scriptloop.errors import NoEventLoopError, UnsupportedValueError

from .coercion import AwaitableCoercion, AwaitableKind, classify
from .marshal import ExceptionMarshal


class HostFunction(EngineFunction):
    """Engine function backed by a host callable.

    Engine arguments are converted to host values and passed positionally;
    ``this`` is not forwarded. A host exception, including one raised while
    converting the result, is rethrown into the engine as a marshaled error
    object. Engine throws from nested engine calls pass through unchanged.
    """

    def __init__(self, converter: "ValueConverter", func: Callable[..., Any]):
        super().__init__(func)
        self.func = func
        self._converter = converter

    def invoke(self, this: Any, args: Sequence[Any]) -> Any:
        converter = self._converter
        try:
            host_args = [converter.to_host(arg) for arg in args]
            return converter.to_engine(self.func(*host_args))
        except (NoEventLoopError, ScriptThrow):
            raise
        except Exception as e:
            raise ScriptThrow(converter.marshal.host_to_engine(e)) from e


class EngineCallable:
    """Host callable proxying an engine function.

    Calls go out with ``this`` undefined; an engine throw is raised as the
    marshaled host exception.
    """

    def __init__(self, converter: "ValueConverter", function: EngineFunction):
        self._converter = converter
        self.function = function

    @property
    def __name__(self) -> str:
        return self.function.name or "anonymous"

    def __call__(self, *args: Any) -> Any:
        converter = self._converter
        engine_args = [converter.to_engine(arg) for arg in args]
        try:
            result = converter.engine.call(self.function, UNDEFINED, engine_args)
        except ScriptThrow as thrown:
            converter.marshal.reraise(thrown)
        return converter.to_host(result)

    def __repr__(self) -> str:
        return f"<EngineCallable {self.__name__}>"


class ValueConverter:
    """``to_host``/``to_engine`` conversion used at every boundary crossing."""

    def __init__(
        self,
        engine: ScriptEngine,
        marshal: ExceptionMarshal,
        coercion: Optional[AwaitableCoercion] = None,
    ):
        self.engine = engine
        self.marshal = marshal
        self.coercion = coercion

    def to_engine(self, value: Any) -> Any:
        """Convert a host value into an engine value."""
        if value is None or isinstance(value, (bool, str)):
            return value
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, EngineCallable):
            return value.function
        if isinstance(value, EngineObject):
            return value
        if isinstance(value, BaseException):
            return self.marshal.host_to_engine(value)
        if classify(value) is not AwaitableKind.PLAIN_VALUE:
            return self._require_coercion().to_engine_promise(value)
        if isinstance(value, (list, tuple)):
            return [self.to_engine(item) for item in value]
        if isinstance(value, dict):
            return EngineObject({str(key): self.to_engine(item) for key, item in value.items()})
        if callable(value):
            return HostFunction(self, value)
        raise UnsupportedValueError(value)

    def to_host(self, value: Any) -> Any:
        """Convert an engine value into a host value.

        Engine objects without a host counterpart are handed over as they are.
        """
        if value is UNDEFINED or value is NULL:
            return None
        if isinstance(value, (bool, str)):
            return value
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, HostFunction):
            return value.func
        if isinstance(value, EnginePromise):
            return self._require_coercion().to_host_future(value)
        if isinstance(value, EngineFunction):
            return EngineCallable(self, value)
        if isinstance(value, list):
            return [self.to_host(item) for item in value]
        return value

    def _require_coercion(self) -> AwaitableCoercion:
        if self.coercion is None:
            raise RuntimeError("ValueConverter has no awaitable coercion attached")
        return self.coercion
