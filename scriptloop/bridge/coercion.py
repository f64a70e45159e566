"""
Awaitable coercion between host futures/tasks/coroutines and engine promises.

Every crossing is tracked by a :class:`CoercionRecord` that settles its
target at most once. Settlement values are inspected when they are
produced: an awaitable settlement is converted and adopted one link at a
time through scheduled callbacks, so chains of any finite depth resolve
without growing the native stack.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import weakref
from dataclasses import dataclass, field
from enum import Enum, auto
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Coroutine, Optional

from scriptloop.engine.promise import EnginePromise, PromiseCapability, promise_resolve
from scriptloop.engine.runtime import ScriptEngine
from scriptloop.errors import AlreadyConsumedError, ScriptLoopError

from .loop import LoopHandle, RunningLoopRegistry
from .marshal import ExceptionMarshal

if TYPE_CHECKING:
    from .values import ValueConverter

logger = logging.getLogger(__name__)


class Direction(Enum):
    """Which way an awaitable crosses the boundary."""

    HOST_TO_ENGINE = auto()
    ENGINE_TO_HOST = auto()


class SourceState(Enum):
    """Settlement state of the awaitable being bridged."""

    PENDING = auto()
    SETTLED_VALUE = auto()
    SETTLED_ERROR = auto()


class AwaitableKind(Enum):
    """Closed set of values the coercion layer distinguishes."""

    HOST_FUTURE = auto()
    HOST_TASK = auto()
    HOST_COROUTINE = auto()
    ENGINE_THENABLE = auto()
    PLAIN_VALUE = auto()


HOST_AWAITABLES = frozenset({
    AwaitableKind.HOST_FUTURE,
    AwaitableKind.HOST_TASK,
    AwaitableKind.HOST_COROUTINE,
})


def classify(value: Any) -> AwaitableKind:
    """Tag a value with its :class:`AwaitableKind`."""
    if isinstance(value, EnginePromise):
        return AwaitableKind.ENGINE_THENABLE
    if isinstance(value, asyncio.Task):
        return AwaitableKind.HOST_TASK
    if asyncio.isfuture(value):
        return AwaitableKind.HOST_FUTURE
    if asyncio.iscoroutine(value):
        return AwaitableKind.HOST_COROUTINE
    return AwaitableKind.PLAIN_VALUE


Sink = Callable[[SourceState, Any], None]


@dataclass(eq=False)
class CoercionRecord:
    """One in-flight bridging of a single awaitable.

    ``target`` is the wrapper handed to the consuming runtime. Settlement is
    write-once: later attempts are no-ops. After settling, the record drops
    its sink and the settled outcome.
    """

    direction: Direction
    target: Any
    sink: Optional[Sink] = field(default=None, repr=False)
    state: SourceState = SourceState.PENDING
    resolved: bool = False

    def settle(self, state: SourceState, outcome: Any) -> bool:
        """Settle the target; returns False if it was already settled."""
        if self.resolved:
            logger.debug(f"Ignoring repeated settlement of {self.direction.name} coercion")
            return False
        self.resolved = True
        self.state = state
        sink, self.sink = self.sink, None
        if sink is not None:
            sink(state, outcome)
        return True


class AwaitableCoercion:
    """Bidirectional coercion of awaitables.

    Host futures, tasks and coroutines become engine promises; engine
    promises become host futures. Coroutines are single-use: the first
    coercion starts them as a task, a second one raises
    :class:`AlreadyConsumedError`.
    """

    def __init__(
        self,
        engine: ScriptEngine,
        registry: RunningLoopRegistry,
        marshal: ExceptionMarshal,
        converter: "ValueConverter",
    ):
        self._engine = engine
        self._registry = registry
        self._marshal = marshal
        self._converter = converter
        self._consumed: weakref.WeakSet = weakref.WeakSet()
        self._pending = 0
        self._to_engine = {
            AwaitableKind.HOST_FUTURE: self._from_future,
            AwaitableKind.HOST_TASK: self._from_future,
            AwaitableKind.HOST_COROUTINE: self._from_coroutine,
            AwaitableKind.ENGINE_THENABLE: self._from_engine_promise,
            AwaitableKind.PLAIN_VALUE: self._from_plain_value,
        }

    @property
    def pending_count(self) -> int:
        """Number of coercions whose source has not settled yet."""
        return self._pending

    def to_engine_promise(self, awaitable: Any) -> EnginePromise:
        """Coerce a host awaitable (or any value) into an engine promise."""
        handle = self._registry.require()
        return self._to_engine[classify(awaitable)](awaitable, handle)

    def to_host_future(self, promise: EnginePromise) -> asyncio.Future:
        """Coerce an engine promise into a future of the running loop."""
        handle = self._registry.require()
        future = handle.create_future()
        record = self._track(CoercionRecord(
            Direction.ENGINE_TO_HOST,
            target=future,
            sink=partial(self._settle_host_future, future, handle),
        ))
        promise.add_reactions(
            partial(record.settle, SourceState.SETTLED_VALUE),
            partial(record.settle, SourceState.SETTLED_ERROR),
        )
        return future

    def consume(self, coro: Coroutine[Any, Any, Any], handle: LoopHandle) -> asyncio.Task:
        """Take ownership of a coroutine by starting it as a task, exactly once."""
        if coro in self._consumed or inspect.getcoroutinestate(coro) != inspect.CORO_CREATED:
            raise AlreadyConsumedError(
                f"cannot reuse already awaited coroutine {getattr(coro, '__qualname__', coro)!s}"
            )
        self._consumed.add(coro)
        return handle.create_task(coro)

    # Host -> engine

    def _from_engine_promise(self, promise: EnginePromise, handle: LoopHandle) -> EnginePromise:
        return promise

    def _from_plain_value(self, value: Any, handle: LoopHandle) -> EnginePromise:
        return promise_resolve(self._engine, self._converter.to_engine(value))

    def _from_coroutine(self, coro: Coroutine[Any, Any, Any], handle: LoopHandle) -> EnginePromise:
        return self._from_future(self.consume(coro, handle), handle)

    def _from_future(self, future: asyncio.Future, handle: LoopHandle) -> EnginePromise:
        capability = self._engine.promise_capability()
        record = self._track(CoercionRecord(
            Direction.HOST_TO_ENGINE,
            target=capability.promise,
            sink=partial(self._settle_engine_promise, capability),
        ))
        # Done callbacks are always scheduled by the loop, even for a future
        # that is already done, so settlement is never synchronous
        future.add_done_callback(partial(self._on_future_done, record))
        logger.debug(f"Coercing {type(future).__name__} into an engine promise")
        return capability.promise

    def _on_future_done(self, record: CoercionRecord, future: asyncio.Future) -> None:
        if future.cancelled():
            record.settle(SourceState.SETTLED_ERROR, asyncio.CancelledError())
            return
        exception = future.exception()
        if exception is not None:
            record.settle(SourceState.SETTLED_ERROR, exception)
        else:
            record.settle(SourceState.SETTLED_VALUE, future.result())

    def _settle_engine_promise(self, capability: PromiseCapability, state: SourceState, outcome: Any) -> None:
        self._pending -= 1
        if state is SourceState.SETTLED_ERROR:
            capability.reject_with(self._marshal.host_to_engine(outcome))
            return
        try:
            # An awaitable result becomes a promise here and is adopted by
            # the engine through a job, one link per settlement
            value = self._converter.to_engine(outcome)
        except ScriptLoopError as e:
            capability.reject_with(self._marshal.host_to_engine(e))
            return
        capability.fulfill_with(value)

    # Engine -> host

    def _settle_host_future(
        self,
        future: asyncio.Future,
        handle: LoopHandle,
        state: SourceState,
        outcome: Any,
    ) -> None:
        self._pending -= 1
        if future.done():
            # Cancelled by its host consumer
            return
        if state is SourceState.SETTLED_ERROR:
            future.set_exception(self._marshal.engine_to_host(outcome))
            return
        try:
            self._deliver_host_result(future, handle, self._converter.to_host(outcome))
        except ScriptLoopError as e:
            future.set_exception(e)

    def _deliver_host_result(self, future: asyncio.Future, handle: LoopHandle, value: Any) -> None:
        kind = classify(value)
        if kind is AwaitableKind.ENGINE_THENABLE:
            value = self.to_host_future(value)
        elif kind not in HOST_AWAITABLES:
            future.set_result(value)
            return
        inner = value if asyncio.isfuture(value) else self.consume(value, handle)
        inner.add_done_callback(partial(self._chain_host_future, future, handle))

    def _chain_host_future(self, future: asyncio.Future, handle: LoopHandle, inner: asyncio.Future) -> None:
        if future.done():
            return
        if inner.cancelled():
            future.cancel()
            return
        exception = inner.exception()
        if exception is not None:
            future.set_exception(exception)
            return
        # The inner result may be awaitable again; follow it one link further
        try:
            self._deliver_host_result(future, handle, inner.result())
        except ScriptLoopError as e:
            future.set_exception(e)

    def _track(self, record: CoercionRecord) -> CoercionRecord:
        self._pending += 1
        return record

