"""In-process script engine object model.

Values, the Promise object model, async functions and the job queue that
the bridge composes with the host event loop.
"""

from scriptloop.engine.jobs import JobQueue
from scriptloop.engine.promise import (
    AsyncFunction,
    EnginePromise,
    PromiseCapability,
    PromiseConstructor,
    PromiseState,
    promise_resolve,
)
from scriptloop.engine.runtime import DYNAMIC_IMPORT_DISABLED, Compiler, ScriptEngine
from scriptloop.engine.values import (
    NULL,
    UNDEFINED,
    BoundFunction,
    EngineError,
    EngineFunction,
    EngineObject,
    GlobalObject,
    ScriptThrow,
    display,
    is_primitive,
)

__all__ = [
    # Runtime
    "ScriptEngine",
    "Compiler",
    "DYNAMIC_IMPORT_DISABLED",
    # Jobs
    "JobQueue",
    # Promises
    "AsyncFunction",
    "EnginePromise",
    "PromiseCapability",
    "PromiseConstructor",
    "PromiseState",
    "promise_resolve",
    # Values
    "NULL",
    "UNDEFINED",
    "BoundFunction",
    "EngineError",
    "EngineFunction",
    "EngineObject",
    "GlobalObject",
    "ScriptThrow",
    "display",
    "is_primitive",
]
