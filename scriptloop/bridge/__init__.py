"""Bridge between the host asyncio loop and the script engine.

The bridge composes the running event loop with the engine's job queue:
timers, promise/awaitable coercion, exception marshaling and job draining.
"""

from scriptloop.bridge.bridge import BridgeStatus, ScriptBridge
from scriptloop.bridge.coercion import (
    AwaitableCoercion,
    AwaitableKind,
    CoercionRecord,
    Direction,
    SourceState,
    classify,
)
from scriptloop.bridge.drain import JobDrainBridge
from scriptloop.bridge.loop import LoopHandle, RunningLoopRegistry
from scriptloop.bridge.manager import BridgeManager, configure_bridge, get_bridge
from scriptloop.bridge.marshal import ExceptionMarshal, MarshaledHostError
from scriptloop.bridge.timers import TimerEntry, TimerRegistry, to_number
from scriptloop.bridge.values import EngineCallable, HostFunction, ValueConverter

__all__ = [
    # Bridge
    "BridgeStatus",
    "ScriptBridge",
    # Loop
    "LoopHandle",
    "RunningLoopRegistry",
    # Timers
    "TimerEntry",
    "TimerRegistry",
    "to_number",
    # Coercion
    "AwaitableCoercion",
    "AwaitableKind",
    "CoercionRecord",
    "Direction",
    "SourceState",
    "classify",
    # Marshaling
    "ExceptionMarshal",
    "MarshaledHostError",
    # Jobs
    "JobDrainBridge",
    # Values
    "EngineCallable",
    "HostFunction",
    "ValueConverter",
    # Manager
    "BridgeManager",
    "configure_bridge",
    "get_bridge",
]
