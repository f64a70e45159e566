"""ScriptLoop - run an embedded script engine's promises and timers on asyncio."""

__app_name__ = "scriptloop"
__version__ = "0.1.0"

from scriptloop.bridge import ScriptBridge, configure_bridge, get_bridge
from scriptloop.errors import (
    AlreadyConsumedError,
    MarshaledScriptError,
    NoEventLoopError,
    ScriptLoopError,
    UnsupportedValueError,
)

__all__ = [
    "__app_name__",
    "__version__",
    "ScriptBridge",
    "configure_bridge",
    "get_bridge",
    "ScriptLoopError",
    "NoEventLoopError",
    "AlreadyConsumedError",
    "MarshaledScriptError",
    "UnsupportedValueError",
]
