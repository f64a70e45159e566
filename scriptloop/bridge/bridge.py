"""
Script Bridge.

Composes exactly one host event loop with exactly one engine job queue so
that timers, promises, coroutines and exceptions behave as a single async
system from either side.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from scriptloop.config import ScriptLoopConfig
from scriptloop.engine.promise import EnginePromise
from scriptloop.engine.runtime import Compiler, ScriptEngine
from scriptloop.engine.values import UNDEFINED, EngineFunction, ScriptThrow
from scriptloop.errors import ScriptLoopError

from .coercion import AwaitableCoercion
from .drain import JobDrainBridge
from .loop import RunningLoopRegistry
from .marshal import ExceptionMarshal
from .timers import TimerRegistry
from .values import EngineCallable, ValueConverter

logger = logging.getLogger(__name__)


@dataclass
class BridgeStatus:
    """Snapshot of the bridge's in-flight work."""

    running_loop: bool
    pending_timers: int = 0
    pending_jobs: int = 0
    pending_coercions: int = 0


class ScriptBridge:
    """
    Bridge between the running asyncio loop and the script engine.

    Installs ``setTimeout``/``clearTimeout`` and ``import`` on the engine's
    global object and converts every value crossing the boundary.

    Example:
        bridge = ScriptBridge(compiler=my_compiler)

        async def main():
            return await bridge.evaluate("new Promise(r => setTimeout(r, 10, 'done'))")

        asyncio.run(main())
    """

    def __init__(
        self,
        config: Optional[ScriptLoopConfig] = None,
        compiler: Optional[Compiler] = None,
        engine: Optional[ScriptEngine] = None,
    ):
        self._config = config or ScriptLoopConfig()
        engine_config = self._config.engine

        self.registry = RunningLoopRegistry(engine_config.name, engine_config.host_name)
        self.drain = JobDrainBridge(self.registry, self._config.drain)
        if engine is None:
            engine = ScriptEngine(compiler=compiler, job_queue=self.drain, filename=engine_config.filename)
        else:
            engine.job_queue = self.drain
        self.engine = engine
        self.drain.attach(engine)

        self.marshal = ExceptionMarshal(engine_config.host_name)
        self.converter = ValueConverter(engine, self.marshal)
        self.coercion = AwaitableCoercion(engine, self.registry, self.marshal, self.converter)
        self.converter.coercion = self.coercion
        self.timers = TimerRegistry(engine, self.drain, self.marshal, self._config.timers)

        self._install_globals()

    @property
    def config(self) -> ScriptLoopConfig:
        return self._config

    def status(self) -> BridgeStatus:
        return BridgeStatus(
            running_loop=self.registry.current() is not None,
            pending_timers=self.timers.pending_count,
            pending_jobs=len(self.drain),
            pending_coercions=self.coercion.pending_count,
        )

    # Host-facing surface

    def evaluate(self, source: str, filename: Optional[str] = None) -> Any:
        """Evaluate source text in the engine and return the host value.

        A promise result comes back as an awaitable future.
        """
        try:
            value = self.engine.evaluate(source, filename)
        except ScriptThrow as thrown:
            self.marshal.reraise(thrown)
        return self.converter.to_host(value)

    def call(self, function: Any, *args: Any) -> Any:
        """Call an engine function with host arguments."""
        if isinstance(function, EngineFunction):
            function = EngineCallable(self.converter, function)
        return function(*args)

    def get_global(self, name: str) -> Any:
        return self.converter.to_host(self.engine.global_object.get(name))

    def set_global(self, name: str, value: Any) -> None:
        self.engine.global_object.set(name, self.converter.to_engine(value))

    def to_engine(self, value: Any) -> Any:
        return self.converter.to_engine(value)

    def to_host(self, value: Any) -> Any:
        return self.converter.to_host(value)

    def offload(self, func: Callable[..., Any], *args: Any) -> EnginePromise:
        """Run blocking ``func`` on a worker thread, settling an engine promise.

        The settlement is posted back to the loop thread before it touches
        the promise, then the job queue is drained there.
        """
        handle = self.registry.require()
        capability = self.engine.promise_capability()

        def settle(outcome: Any, failed: bool) -> None:
            if failed:
                capability.reject_with(self.marshal.host_to_engine(outcome))
            else:
                try:
                    value = self.converter.to_engine(outcome)
                except ScriptLoopError as e:
                    capability.reject_with(self.marshal.host_to_engine(e))
                else:
                    capability.fulfill_with(value)

        def work() -> None:
            try:
                result = func(*args)
            except Exception as e:
                self.drain.post_threadsafe(handle, settle, e, True)
            else:
                self.drain.post_threadsafe(handle, settle, result, False)

        handle.loop.run_in_executor(None, work)
        return capability.promise

    def run(self, main: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Run ``main(self, *args)`` to completion on a fresh event loop."""
        async def runner() -> Any:
            result = await main(self, *args)
            while isinstance(result, asyncio.Future):
                result = await result
            return result

        return asyncio.run(runner())

    # Engine globals

    def _install_globals(self) -> None:
        registry = self.registry
        timers = self.timers

        def set_timeout(this: Any, callback: Any = UNDEFINED, delay: Any = UNDEFINED, *args: Any) -> Any:
            return timers.set_timeout(registry.require(), callback, delay, *args)

        def clear_timeout(this: Any, timer_id: Any = UNDEFINED) -> Any:
            registry.require()
            timers.clear_timeout(timer_id)
            return UNDEFINED

        def dynamic_import(this: Any, specifier: Any = UNDEFINED) -> Any:
            return self.engine.dynamic_import(specifier)

        global_object = self.engine.global_object
        global_object.set("setTimeout", EngineFunction(set_timeout, "setTimeout", 1))
        global_object.set("clearTimeout", EngineFunction(clear_timeout, "clearTimeout", 1))
        global_object.set("import", EngineFunction(dynamic_import, "import", 1))
        logger.debug("Installed timer and import globals")
