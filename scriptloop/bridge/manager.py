"""Script Bridge Manager.

Manages the lifecycle of the process-wide :class:`ScriptBridge` with the
singleton pattern, so every caller shares one engine, one job queue and one
set of timers.
"""

from __future__ import annotations

import logging
import weakref
from typing import Optional

from scriptloop.config import ScriptLoopConfig, get_config
from scriptloop.engine.runtime import Compiler

from .bridge import BridgeStatus, ScriptBridge

logger = logging.getLogger(__name__)


class BridgeManager:
    """Owns the shared bridge instance.

    Example:
        manager = BridgeManager.get_instance()
        manager.configure(compiler=my_compiler)
        bridge = manager.get_bridge()
    """

    _instance: Optional['BridgeManager'] = None

    def __init__(self):
        self._bridge: Optional[ScriptBridge] = None
        self._config: Optional[ScriptLoopConfig] = None
        self._compiler: Optional[Compiler] = None
        self._active_callers: weakref.WeakSet = weakref.WeakSet()

    @classmethod
    def get_instance(cls) -> 'BridgeManager':
        """Get the singleton instance of the bridge manager."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (mainly for testing).

        Existing references to the previous instance and its bridge keep
        working but are no longer shared.
        """
        cls._instance = None

    @property
    def has_bridge(self) -> bool:
        return self._bridge is not None

    def configure(
        self,
        config: Optional[ScriptLoopConfig] = None,
        compiler: Optional[Compiler] = None,
    ) -> None:
        """Configure the bridge before its first use.

        Args:
            config: Bridge configuration (defaults to the loaded global config)
            compiler: Source compiler used by ``evaluate`` and string timers

        Raises:
            RuntimeError: If the bridge has already been created
        """
        if self._bridge is not None:
            raise RuntimeError("Cannot configure after the bridge was created. Call reset() first.")
        self._config = config
        self._compiler = compiler
        logger.debug(f"BridgeManager configured (compiler={'set' if compiler else 'none'})")

    def get_bridge(self) -> ScriptBridge:
        """Get or create the shared bridge."""
        if self._bridge is None:
            config = self._config or get_config()
            self._bridge = ScriptBridge(config=config, compiler=self._compiler)
            logger.info(f"{config.engine.name} bridge created")
        return self._bridge

    def reset(self) -> None:
        """Drop the shared bridge; the next ``get_bridge`` builds a new one."""
        if self._bridge is not None:
            logger.debug("Discarding shared bridge")
        self._bridge = None

    def get_status(self) -> dict[str, object]:
        """Get the current status of the shared bridge.

        Returns:
            Dictionary with ``has_bridge``, ``active_callers`` and, when a
            bridge exists, its pending timer, job and coercion counts.
        """
        status: dict[str, object] = {
            "has_bridge": self._bridge is not None,
            "active_callers": len(self._active_callers),
        }
        if self._bridge is not None:
            snapshot: BridgeStatus = self._bridge.status()
            status.update(
                running_loop=snapshot.running_loop,
                pending_timers=snapshot.pending_timers,
                pending_jobs=snapshot.pending_jobs,
                pending_coercions=snapshot.pending_coercions,
            )
        return status

    def register_caller(self, obj: object) -> None:
        """Register an object as an active user of the shared bridge."""
        self._active_callers.add(obj)

    def unregister_caller(self, obj: object) -> None:
        self._active_callers.discard(obj)

    @property
    def active_caller_count(self) -> int:
        return len(self._active_callers)


# Convenience functions for simple use cases

def get_bridge() -> ScriptBridge:
    """Get the shared bridge instance."""
    return BridgeManager.get_instance().get_bridge()


def configure_bridge(
    config: Optional[ScriptLoopConfig] = None,
    compiler: Optional[Compiler] = None,
) -> None:
    """Configure the shared bridge during application startup."""
    BridgeManager.get_instance().configure(config=config, compiler=compiler)
