"""
Script engine runtime.

Owns the global object, the ``Promise`` constructor, the job queue and the
rejection tracker. Source text is handed to an external compiler; the
engine only runs what the compiler returns.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence

from .jobs import JobQueue
from .promise import (
    AsyncFunction,
    EnginePromise,
    PromiseCapability,
    PromiseConstructor,
    create_promise_prototype,
    promise_resolve,
)
from .values import (
    UNDEFINED,
    EngineError,
    EngineFunction,
    GlobalObject,
    ScriptThrow,
    display,
)

logger = logging.getLogger(__name__)

DYNAMIC_IMPORT_DISABLED = "Dynamic module import is disabled or not supported in this context"

# compiler(source, filename) -> script function run with the global object as `this`
Compiler = Callable[[str, str], EngineFunction]


class ScriptEngine:
    """
    The embedded script engine.

    Example:
        engine = ScriptEngine()
        promise = engine.resolved(1).then(EngineFunction(lambda this, v: v + 1))
        engine.job_queue.run_pending()
    """

    def __init__(
        self,
        compiler: Optional[Compiler] = None,
        job_queue: Optional[JobQueue] = None,
        filename: str = "<evaluate>",
    ):
        self.compiler = compiler
        self.job_queue = job_queue if job_queue is not None else JobQueue()
        self.filename = filename
        self.global_object = GlobalObject()
        self.promise_prototype = create_promise_prototype(self)
        self.promise_constructor = PromiseConstructor(self)
        self._unhandled_rejections: dict[int, EnginePromise] = {}

        self.global_object.set("globalThis", self.global_object)
        self.global_object.set("Promise", self.promise_constructor)

    def call(self, function: Any, this: Any = UNDEFINED, args: Sequence[Any] = ()) -> Any:
        """Call an engine function; a non-function throws ``TypeError``."""
        if not isinstance(function, EngineFunction):
            raise ScriptThrow(self.make_error("TypeError", f"{display(function)} is not a function"))
        return function.invoke(this, tuple(args))

    def evaluate(self, source: str, filename: Optional[str] = None) -> Any:
        """Run source text as top-level code in the global scope."""
        if self.compiler is None:
            raise ScriptThrow(self.make_error(
                "Error", "no compiler is attached to this engine", file_name=filename or self.filename
            ))
        script = self.compiler(source, filename or self.filename)
        return self.call(script, self.global_object, ())

    def dynamic_import(self, specifier: Any, filename: Optional[str] = None) -> Any:
        """``import(specifier)`` is disabled: it throws instead of returning a promise."""
        logger.debug(f"Rejected dynamic import of {display(specifier)}")
        raise ScriptThrow(self.make_error(
            "Error", DYNAMIC_IMPORT_DISABLED, file_name=filename or self.filename, line_number=1
        ))

    def make_error(
        self,
        name: str,
        message: str,
        file_name: Optional[str] = None,
        line_number: Optional[int] = None,
    ) -> EngineError:
        return EngineError(message, name=name, file_name=file_name, line_number=line_number)

    # Promises

    def new_promise(self, executor: Any = UNDEFINED) -> EnginePromise:
        """``new Promise(executor)``."""
        return self.promise_constructor.construct(executor)

    def promise_capability(self) -> PromiseCapability:
        return PromiseCapability.create(self)

    def resolved(self, value: Any = UNDEFINED) -> EnginePromise:
        return promise_resolve(self, value)

    def rejected(self, reason: Any = UNDEFINED) -> EnginePromise:
        capability = PromiseCapability.create(self)
        capability.reject_with(reason)
        return capability.promise

    def async_function(self, body: Callable[..., Any], name: str = "", length: int = 0) -> AsyncFunction:
        return AsyncFunction(self, body, name, length)

    # Rejection tracking

    def track_rejection(self, promise: EnginePromise, operation: str) -> None:
        """Record a rejection without handlers, or forget it once handled."""
        if operation == "reject":
            self._unhandled_rejections[id(promise)] = promise
        else:
            self._unhandled_rejections.pop(id(promise), None)

    def take_unhandled_rejections(self) -> list[EnginePromise]:
        """Return and forget the rejected promises that still have no handler."""
        promises = list(self._unhandled_rejections.values())
        self._unhandled_rejections.clear()
        return promises
