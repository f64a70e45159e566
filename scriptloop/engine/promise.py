"""
Engine Promise object model.

Implements promise states, resolving functions with thenable adoption,
``then``/``catch``/``finally`` reactions that always run as jobs on the
engine's job queue, the ``Promise`` constructor with its static
combinators, and async functions whose ``await`` points are generator
``yield`` expressions.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum, auto
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Generator, Optional, Sequence

from .values import (
    UNDEFINED,
    EngineFunction,
    EngineObject,
    ScriptThrow,
    display,
)

if TYPE_CHECKING:
    from .runtime import ScriptEngine


class PromiseState(Enum):
    """Settlement state of an engine promise."""

    PENDING = auto()
    FULFILLED = auto()
    REJECTED = auto()


@dataclass
class PromiseCapability:
    """A promise together with its resolve/reject functions."""

    promise: "EnginePromise"
    resolve: EngineFunction
    reject: EngineFunction

    @classmethod
    def create(cls, engine: "ScriptEngine") -> "PromiseCapability":
        promise = EnginePromise(engine)
        resolve, reject = promise.resolving_functions()
        return cls(promise, resolve, reject)

    def fulfill_with(self, value: Any) -> None:
        self.resolve.invoke(UNDEFINED, (value,))

    def reject_with(self, reason: Any) -> None:
        self.reject.invoke(UNDEFINED, (reason,))


@dataclass
class _Reaction:
    kind: PromiseState
    handler: Any
    # None marks a host-side continuation registered with add_reactions()
    capability: Optional[PromiseCapability] = None


class EnginePromise(EngineObject):
    """An engine Promise.

    Creating one asks the engine's job queue whether it can run promise
    jobs at all; an embedding without a driving loop refuses here.
    """

    class_name = "Promise"

    def __init__(self, engine: "ScriptEngine"):
        engine.job_queue.check_ready()
        super().__init__(prototype=engine.promise_prototype)
        self.engine = engine
        self.state = PromiseState.PENDING
        self.result: Any = UNDEFINED
        self.is_handled = False
        self._reactions: list[tuple[_Reaction, _Reaction]] = []

    @property
    def is_pending(self) -> bool:
        return self.state is PromiseState.PENDING

    def resolving_functions(self) -> tuple[EngineFunction, EngineFunction]:
        """Create a resolve/reject pair sharing one "already resolved" flag."""
        already_resolved = False

        def resolve(this: Any, resolution: Any = UNDEFINED) -> Any:
            nonlocal already_resolved
            if not already_resolved:
                already_resolved = True
                self._resolve(resolution)
            return UNDEFINED

        def reject(this: Any, reason: Any = UNDEFINED) -> Any:
            nonlocal already_resolved
            if not already_resolved:
                already_resolved = True
                self._reject(reason)
            return UNDEFINED

        return EngineFunction(resolve, "resolve", 1), EngineFunction(reject, "reject", 1)

    def then(self, on_fulfilled: Any = UNDEFINED, on_rejected: Any = UNDEFINED) -> "EnginePromise":
        capability = PromiseCapability.create(self.engine)
        self._perform_then(
            _Reaction(PromiseState.FULFILLED, on_fulfilled, capability),
            _Reaction(PromiseState.REJECTED, on_rejected, capability),
        )
        return capability.promise

    def catch(self, on_rejected: Any = UNDEFINED) -> "EnginePromise":
        return self.then(UNDEFINED, on_rejected)

    def finally_(self, on_finally: Any = UNDEFINED) -> "EnginePromise":
        if not isinstance(on_finally, EngineFunction):
            return self.then(on_finally, on_finally)
        engine = self.engine

        def then_finally(this: Any, value: Any = UNDEFINED) -> Any:
            result = engine.call(on_finally, UNDEFINED, ())
            return promise_resolve(engine, result).then(EngineFunction(lambda this, _=UNDEFINED: value))

        def catch_finally(this: Any, reason: Any = UNDEFINED) -> Any:
            result = engine.call(on_finally, UNDEFINED, ())

            def thrower(this: Any, _: Any = UNDEFINED) -> Any:
                raise ScriptThrow(reason)

            return promise_resolve(engine, result).then(EngineFunction(thrower))

        return self.then(EngineFunction(then_finally), EngineFunction(catch_finally))

    def add_reactions(
        self,
        on_fulfilled: Callable[[Any], None],
        on_rejected: Callable[[Any], None],
    ) -> None:
        """Register host-side continuations without deriving a new promise.

        The callbacks still run as jobs, after the promise settles, and mark
        the promise as handled.
        """
        self._perform_then(
            _Reaction(PromiseState.FULFILLED, on_fulfilled),
            _Reaction(PromiseState.REJECTED, on_rejected),
        )

    def _perform_then(self, fulfill_reaction: _Reaction, reject_reaction: _Reaction) -> None:
        if self.state is PromiseState.PENDING:
            self._reactions.append((fulfill_reaction, reject_reaction))
        elif self.state is PromiseState.FULFILLED:
            self._enqueue_reaction(fulfill_reaction, self.result)
        else:
            if not self.is_handled:
                self.engine.track_rejection(self, "handle")
            self._enqueue_reaction(reject_reaction, self.result)
        self.is_handled = True

    def _resolve(self, resolution: Any) -> None:
        if resolution is self:
            self._reject(self.engine.make_error("TypeError", "cannot resolve a promise with itself"))
            return
        if not isinstance(resolution, EngineObject):
            self._fulfill(resolution)
            return
        then = resolution.get("then")
        if not isinstance(then, EngineFunction):
            self._fulfill(resolution)
            return
        # Adopting a thenable always takes a job, one link at a time
        self.engine.job_queue.enqueue(partial(self._resolve_thenable, resolution, then))

    def _resolve_thenable(self, thenable: EngineObject, then: EngineFunction) -> None:
        resolve, reject = self.resolving_functions()
        try:
            self.engine.call(then, thenable, (resolve, reject))
        except ScriptThrow as thrown:
            reject.invoke(UNDEFINED, (thrown.value,))

    def _fulfill(self, value: Any) -> None:
        if self.state is not PromiseState.PENDING:
            return
        self.state = PromiseState.FULFILLED
        self.result = value
        self._trigger(0)

    def _reject(self, reason: Any) -> None:
        if self.state is not PromiseState.PENDING:
            return
        self.state = PromiseState.REJECTED
        self.result = reason
        if not self.is_handled:
            self.engine.track_rejection(self, "reject")
        self._trigger(1)

    def _trigger(self, index: int) -> None:
        reactions, self._reactions = self._reactions, []
        for pair in reactions:
            self._enqueue_reaction(pair[index], self.result)

    def _enqueue_reaction(self, reaction: _Reaction, argument: Any) -> None:
        self.engine.job_queue.enqueue(partial(_run_reaction, self.engine, reaction, argument))

    def __repr__(self) -> str:
        if self.state is PromiseState.PENDING:
            return "Promise { <pending> }"
        if self.state is PromiseState.FULFILLED:
            return f"Promise {{ {display(self.result)} }}"
        return f"Promise {{ <rejected> {display(self.result)} }}"


def _run_reaction(engine: "ScriptEngine", reaction: _Reaction, argument: Any) -> None:
    capability = reaction.capability
    if capability is None:
        reaction.handler(argument)
        return
    if not isinstance(reaction.handler, EngineFunction):
        if reaction.kind is PromiseState.FULFILLED:
            capability.fulfill_with(argument)
        else:
            capability.reject_with(argument)
        return
    try:
        value = engine.call(reaction.handler, UNDEFINED, (argument,))
    except ScriptThrow as thrown:
        capability.reject_with(thrown.value)
    else:
        capability.fulfill_with(value)


def promise_resolve(engine: "ScriptEngine", value: Any) -> EnginePromise:
    """``Promise.resolve``: pass promises through, wrap anything else."""
    if isinstance(value, EnginePromise) and value.engine is engine:
        return value
    capability = PromiseCapability.create(engine)
    capability.fulfill_with(value)
    return capability.promise


def create_promise_prototype(engine: "ScriptEngine") -> EngineObject:
    """Build ``Promise.prototype`` with ``then``, ``catch`` and ``finally``."""

    def receiver(this: Any, method: str) -> EnginePromise:
        if not isinstance(this, EnginePromise):
            raise ScriptThrow(engine.make_error(
                "TypeError",
                f"Promise.prototype.{method} called on incompatible receiver {display(this)}",
            ))
        return this

    def then(this: Any, on_fulfilled: Any = UNDEFINED, on_rejected: Any = UNDEFINED) -> Any:
        return receiver(this, "then").then(on_fulfilled, on_rejected)

    def catch(this: Any, on_rejected: Any = UNDEFINED) -> Any:
        return receiver(this, "catch").catch(on_rejected)

    def finally_(this: Any, on_finally: Any = UNDEFINED) -> Any:
        return receiver(this, "finally").finally_(on_finally)

    return EngineObject({
        "then": EngineFunction(then, "then", 2),
        "catch": EngineFunction(catch, "catch", 1),
        "finally": EngineFunction(finally_, "finally", 1),
    })


class PromiseConstructor(EngineFunction):
    """The engine's ``Promise`` constructor and its static combinators.

    Statics require the constructor itself as receiver, so an unbound
    ``Promise.resolve`` throws ``TypeError: ... is not a constructor``.
    """

    def __init__(self, engine: "ScriptEngine"):
        super().__init__(self._call, "Promise", 1)
        self.engine = engine
        self.set("prototype", engine.promise_prototype)
        for name, native, length in (
            ("resolve", self._static_resolve, 1),
            ("reject", self._static_reject, 1),
            ("all", self._static_all, 1),
            ("allSettled", self._static_all_settled, 1),
            ("race", self._static_race, 1),
        ):
            self.set(name, EngineFunction(native, name, length))

    def construct(self, executor: Any = UNDEFINED) -> EnginePromise:
        """``new Promise(executor)``."""
        if not isinstance(executor, EngineFunction):
            raise ScriptThrow(self.engine.make_error(
                "TypeError", f"Promise resolver {display(executor)} is not a function"
            ))
        capability = PromiseCapability.create(self.engine)
        try:
            self.engine.call(executor, UNDEFINED, (capability.resolve, capability.reject))
        except ScriptThrow as thrown:
            capability.reject_with(thrown.value)
        return capability.promise

    def _call(self, this: Any, executor: Any = UNDEFINED) -> Any:
        raise ScriptThrow(self.engine.make_error(
            "TypeError", "Promise constructor cannot be invoked without 'new'"
        ))

    def _require_constructor(self, this: Any) -> None:
        if this is not self:
            raise ScriptThrow(self.engine.make_error("TypeError", f"{display(this)} is not a constructor"))

    def _items(self, iterable: Any) -> Sequence[Any]:
        if not isinstance(iterable, (list, tuple)):
            raise ScriptThrow(self.engine.make_error("TypeError", f"{display(iterable)} is not iterable"))
        return iterable

    def _static_resolve(self, this: Any, value: Any = UNDEFINED) -> Any:
        self._require_constructor(this)
        return promise_resolve(self.engine, value)

    def _static_reject(self, this: Any, reason: Any = UNDEFINED) -> Any:
        self._require_constructor(this)
        capability = PromiseCapability.create(self.engine)
        capability.reject_with(reason)
        return capability.promise

    def _static_all(self, this: Any, iterable: Any = UNDEFINED) -> Any:
        self._require_constructor(this)
        items = self._items(iterable)
        capability = PromiseCapability.create(self.engine)
        values: list[Any] = [UNDEFINED] * len(items)
        remaining = len(items)
        if not remaining:
            capability.fulfill_with([])
            return capability.promise

        def on_fulfilled(index: int, this: Any, value: Any = UNDEFINED) -> Any:
            nonlocal remaining
            values[index] = value
            remaining -= 1
            if remaining == 0:
                capability.fulfill_with(list(values))
            return UNDEFINED

        for index, item in enumerate(items):
            promise_resolve(self.engine, item).then(
                EngineFunction(partial(on_fulfilled, index)), capability.reject
            )
        return capability.promise

    def _static_all_settled(self, this: Any, iterable: Any = UNDEFINED) -> Any:
        self._require_constructor(this)
        items = self._items(iterable)
        capability = PromiseCapability.create(self.engine)
        results: list[Any] = [UNDEFINED] * len(items)
        remaining = len(items)
        if not remaining:
            capability.fulfill_with([])
            return capability.promise

        def settle(index: int, entry: EngineObject) -> Any:
            nonlocal remaining
            results[index] = entry
            remaining -= 1
            if remaining == 0:
                capability.fulfill_with(list(results))
            return UNDEFINED

        for index, item in enumerate(items):
            promise_resolve(self.engine, item).then(
                EngineFunction(lambda this, value=UNDEFINED, index=index: settle(
                    index, EngineObject({"status": "fulfilled", "value": value})
                )),
                EngineFunction(lambda this, reason=UNDEFINED, index=index: settle(
                    index, EngineObject({"status": "rejected", "reason": reason})
                )),
            )
        return capability.promise

    def _static_race(self, this: Any, iterable: Any = UNDEFINED) -> Any:
        self._require_constructor(this)
        capability = PromiseCapability.create(self.engine)
        for item in self._items(iterable):
            promise_resolve(self.engine, item).then(capability.resolve, capability.reject)
        return capability.promise


class AsyncFunction(EngineFunction):
    """Engine ``async`` function.

    The body is called as ``body(this, *args)``. A generator body awaits by
    yielding: the yielded value is resolved to a promise and the generator is
    resumed with its value, or has a ScriptThrow thrown into it on rejection.
    The body's return value settles the returned promise.
    """

    def __init__(
        self,
        engine: "ScriptEngine",
        body: Callable[..., Any],
        name: str = "",
        length: int = 0,
    ):
        super().__init__(body, name, length)
        self.engine = engine

    def invoke(self, this: Any, args: Sequence[Any]) -> Any:
        capability = PromiseCapability.create(self.engine)
        try:
            result = self.native(this, *args)
        except ScriptThrow as thrown:
            capability.reject_with(thrown.value)
            return capability.promise
        if inspect.isgenerator(result):
            _AsyncDriver(self.engine, result, capability).advance(result.send, UNDEFINED)
        else:
            capability.fulfill_with(result)
        return capability.promise


class _AsyncDriver:
    """Resumes an async function body once per settled await."""

    def __init__(
        self,
        engine: "ScriptEngine",
        generator: Generator[Any, Any, Any],
        capability: PromiseCapability,
    ):
        self.engine = engine
        self.generator = generator
        self.capability = capability

    def advance(self, method: Callable[[Any], Any], argument: Any) -> None:
        try:
            awaited = method(argument)
        except StopIteration as stop:
            self.capability.fulfill_with(stop.value)
            return
        except ScriptThrow as thrown:
            self.capability.reject_with(thrown.value)
            return
        promise_resolve(self.engine, awaited).add_reactions(self._on_fulfilled, self._on_rejected)

    def _on_fulfilled(self, value: Any) -> None:
        self.advance(self.generator.send, value)

    def _on_rejected(self, reason: Any) -> None:
        self.advance(self._throw, reason)

    def _throw(self, reason: Any) -> Any:
        return self.generator.throw(ScriptThrow(reason))
