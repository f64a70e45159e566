"""
Running-loop registry.

There is no process-wide "current loop" slot here: the loop driving the
calling thread is looked up from asyncio at each entry point and handed
down to the operations that need it as a :class:`LoopHandle`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Optional

from scriptloop.errors import NoEventLoopError


@dataclass(frozen=True)
class LoopHandle:
    """The host loop currently driving bridged code on this thread."""

    loop: asyncio.AbstractEventLoop

    def time(self) -> float:
        return self.loop.time()

    def create_future(self) -> asyncio.Future:
        return self.loop.create_future()

    def create_task(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        return self.loop.create_task(coro)

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> asyncio.Handle:
        return self.loop.call_soon(callback, *args)

    def call_at(self, when: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self.loop.call_at(when, callback, *args)

    def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> asyncio.Handle:
        return self.loop.call_soon_threadsafe(callback, *args)

    def report(self, message: str, exception: BaseException, **context: Any) -> None:
        """Hand an exception that nobody awaits to the loop's exception handler."""
        self.loop.call_exception_handler({"message": message, "exception": exception, **context})


class RunningLoopRegistry:
    """Looks up the running host loop and fails fast when there is none."""

    def __init__(self, engine_name: str = "ScriptLoop", host_name: str = "Python"):
        self.engine_name = engine_name
        self.host_name = host_name

    def current(self) -> Optional[LoopHandle]:
        """Return the loop running on this thread, if any."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        return LoopHandle(loop)

    def require(self) -> LoopHandle:
        """Return the running loop or raise :class:`NoEventLoopError`."""
        handle = self.current()
        if handle is None:
            raise NoEventLoopError(self.engine_name, self.host_name)
        return handle
