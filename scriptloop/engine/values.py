"""
Engine value model.

Engine values are plain Python objects:

- ``None`` is ``undefined`` and :data:`NULL` is ``null``
- numbers are floats, strings are ``str``, booleans are ``bool``
- arrays are Python lists
- everything else is an :class:`EngineObject` (functions, errors, promises)

A thrown engine value travels through host code as a :class:`ScriptThrow`.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Optional, Sequence

UNDEFINED = None


class _Null:
    """The engine's ``null`` value."""

    _instance: Optional["_Null"] = None

    def __new__(cls) -> "_Null":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "null"

    def __bool__(self) -> bool:
        return False


NULL = _Null()


class ScriptThrow(Exception):
    """An engine throw completion carrying an arbitrary thrown value.

    The engine may throw anything (error objects, numbers, strings, NaN),
    so the payload is kept as-is in :attr:`value`.
    """

    def __init__(self, value: Any = UNDEFINED):
        super().__init__(display(value))
        self.value = value


class EngineObject:
    """Engine object with own properties and an optional prototype."""

    class_name = "Object"

    def __init__(
        self,
        properties: Optional[dict[str, Any]] = None,
        prototype: Optional["EngineObject"] = None,
    ):
        self.properties: dict[str, Any] = dict(properties or {})
        self.prototype = prototype

    def get(self, key: str, default: Any = UNDEFINED) -> Any:
        obj: Optional[EngineObject] = self
        while obj is not None:
            if key in obj.properties:
                return obj.properties[key]
            obj = obj.prototype
        return default

    def set(self, key: str, value: Any) -> None:
        self.properties[key] = value

    def delete(self, key: str) -> bool:
        self.properties.pop(key, None)
        return True

    def has(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __repr__(self) -> str:
        return f"[object {self.class_name}]"


_MISSING = object()


class GlobalObject(EngineObject):
    """The engine's global object (``globalThis``)."""

    class_name = "global"


class EngineFunction(EngineObject):
    """Callable engine object.

    ``native`` is invoked as ``native(this, *args)``; missing arguments are
    simply not passed, so natives declare defaults for optional parameters.
    """

    class_name = "Function"

    def __init__(
        self,
        native: Callable[..., Any],
        name: str = "",
        length: int = 0,
    ):
        super().__init__()
        self.native = native
        if not name:
            name = getattr(native, "__name__", "")
            if name == "<lambda>":
                name = ""
        self.name = name
        self.length = length

    def invoke(self, this: Any, args: Sequence[Any]) -> Any:
        return self.native(this, *args)

    def bind(self, this: Any, *args: Any) -> "BoundFunction":
        return BoundFunction(self, this, args)

    def __repr__(self) -> str:
        return f"function {self.name or 'anonymous'}() {{ [native code] }}"


class BoundFunction(EngineFunction):
    """Result of ``Function.prototype.bind``."""

    def __init__(self, target: EngineFunction, bound_this: Any, bound_args: Sequence[Any]):
        super().__init__(target.native, f"bound {target.name}", max(0, target.length - len(bound_args)))
        self.target = target
        self.bound_this = bound_this
        self.bound_args = tuple(bound_args)

    def invoke(self, this: Any, args: Sequence[Any]) -> Any:
        return self.target.invoke(self.bound_this, self.bound_args + tuple(args))


class EngineError(EngineObject):
    """Structured engine error object (``Error``, ``TypeError`` ...)."""

    class_name = "Error"

    def __init__(
        self,
        message: str = "",
        name: str = "Error",
        file_name: Optional[str] = None,
        line_number: Optional[int] = None,
    ):
        super().__init__()
        self.name = name
        self.message = message
        self.file_name = file_name
        self.line_number = line_number

    def get(self, key: str, default: Any = UNDEFINED) -> Any:
        if key == "name":
            return self.name
        if key == "message":
            return self.message
        return super().get(key, default)

    def render(self) -> str:
        """Render the error, with file/line information when known."""
        text = f"{self.name}: {self.message}" if self.message else self.name
        if self.file_name is None:
            return text
        location = f"Error in file {self.file_name}"
        if self.line_number is not None:
            location += f", on line {self.line_number}"
        return f"{location}:\n{text}"

    def __str__(self) -> str:
        return f"{self.name}: {self.message}" if self.message else self.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.message!r})"


def is_primitive(value: Any) -> bool:
    """Check whether an engine value is a primitive (not an object)."""
    return value is UNDEFINED or value is NULL or isinstance(value, (bool, int, float, str))


def display(value: Any) -> str:
    """Engine-flavoured string form of a value, used in diagnostics."""
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        number = float(value)
        if math.isnan(number):
            return "NaN"
        if math.isinf(number):
            return "Infinity" if number > 0 else "-Infinity"
        if number.is_integer():
            return str(int(number))
        return repr(number)
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ",".join(display(item) for item in value)
    return repr(value)
