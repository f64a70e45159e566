"""
Timer registry behind the engine's ``setTimeout``/``clearTimeout``.

Each timer gets a fresh positive integer handle and one delayed call on the
host loop. Firing drains the engine job queue first, runs every timer due by
the same deadline in (deadline, handle) order, and drains again after each
callback.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from scriptloop.config import TimerConfig
from scriptloop.engine.runtime import ScriptEngine
from scriptloop.engine.values import NULL, UNDEFINED, EngineFunction, ScriptThrow, display

from .drain import JobDrainBridge
from .loop import LoopHandle
from .marshal import ExceptionMarshal

logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def to_number(value: Any) -> float:
    """Numeric coercion for timer arguments; strings parse like ``parseFloat``."""
    if value is UNDEFINED:
        return math.nan
    if value is NULL:
        return 0.0
    if isinstance(value, (bool, int, float)):
        return float(value)
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        return float(match.group(0)) if match else math.nan
    return math.nan


@dataclass(eq=False)
class TimerEntry:
    """A pending ``setTimeout`` callback."""

    handle: int
    delay_ms: float
    callback: Any
    args: tuple[Any, ...]
    deadline: float
    loop: asyncio.AbstractEventLoop = field(repr=False)
    repeating: bool = False
    cancelled: bool = False
    timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)


class TimerRegistry:
    """Owns timer handles and entries for one bridge.

    Only the loop thread touches the registry, so it needs no lock.
    """

    def __init__(
        self,
        engine: ScriptEngine,
        drain: JobDrainBridge,
        marshal: ExceptionMarshal,
        config: Optional[TimerConfig] = None,
    ):
        self._engine = engine
        self._drain = drain
        self._marshal = marshal
        self._config = config or TimerConfig()
        self._entries: dict[int, TimerEntry] = {}
        self._last_handle = 0

    @property
    def pending_count(self) -> int:
        return len(self._entries)

    def coerce_delay(self, delay: Any) -> float:
        """Coerce a delay to milliseconds; invalid delays become the minimum."""
        value = to_number(delay)
        if not math.isfinite(value) or value < self._config.min_delay_ms or value > self._config.max_delay_ms:
            return self._config.min_delay_ms
        return value

    def set_timeout(self, handle: LoopHandle, callback: Any, delay: Any = UNDEFINED, *args: Any) -> float:
        """Register ``callback`` to run after ``delay`` milliseconds.

        Args:
            handle: The running loop
            callback: Engine function, or source text evaluated in global scope
            delay: Delay in milliseconds
            args: Extra arguments forwarded to the callback

        Returns:
            The timer handle, as an engine number
        """
        if not isinstance(callback, (EngineFunction, str)):
            raise ScriptThrow(self._engine.make_error(
                "TypeError", f"{display(callback)} is not a function or a source string"
            ))
        self._prune_closed_loops()

        delay_ms = self.coerce_delay(delay)
        self._last_handle += 1
        entry = TimerEntry(
            handle=self._last_handle,
            delay_ms=delay_ms,
            callback=callback,
            args=tuple(args),
            deadline=handle.time() + delay_ms / 1000.0,
            loop=handle.loop,
        )
        entry.timer = handle.call_at(entry.deadline, self._fire, entry.handle)
        self._entries[entry.handle] = entry
        logger.debug(f"Timer {entry.handle} registered for {delay_ms}ms")
        return float(entry.handle)

    def clear_timeout(self, timer_id: Any = UNDEFINED) -> None:
        """Cancel a pending timer. Unknown, stale or malformed ids are ignored."""
        number = to_number(timer_id)
        if not math.isfinite(number) or number <= 0 or not number.is_integer():
            return
        entry = self._entries.pop(int(number), None)
        if entry is None:
            return
        entry.cancelled = True
        if entry.timer is not None:
            entry.timer.cancel()
        logger.debug(f"Timer {entry.handle} cleared")

    def _fire(self, timer_id: int) -> None:
        entry = self._entries.get(timer_id)
        if entry is None or entry.cancelled:
            return
        loop = entry.loop
        if loop.time() < entry.deadline:
            # The loop may wake up within its clock resolution of the deadline
            entry.timer = loop.call_at(entry.deadline, self._fire, timer_id)
            return

        self._drain.drain()
        due = sorted(
            (e for e in self._entries.values() if e.loop is loop and e.deadline <= entry.deadline),
            key=lambda e: (e.deadline, e.handle),
        )
        for due_entry in due:
            if due_entry.cancelled:
                continue
            self._entries.pop(due_entry.handle, None)
            if due_entry.timer is not None:
                due_entry.timer.cancel()
            self._run(due_entry)
            self._drain.drain()

    def _run(self, entry: TimerEntry) -> None:
        logger.debug(f"Timer {entry.handle} firing")
        try:
            if isinstance(entry.callback, str):
                self._engine.evaluate(entry.callback)
            else:
                self._engine.call(entry.callback, self._engine.global_object, entry.args)
        except ScriptThrow as thrown:
            error = self._marshal.engine_to_host(thrown.value)
            LoopHandle(entry.loop).report(
                f"Uncaught exception in timer {entry.handle}", error, timer_handle=entry.handle
            )

    def _prune_closed_loops(self) -> None:
        stale = [key for key, entry in self._entries.items() if entry.loop.is_closed()]
        for key in stale:
            del self._entries[key]
