"""
Job drain bridge.

An engine job queue that schedules itself on the host loop: the first job
enqueued while the queue is idle schedules one drain callback, and that
drain runs every job (including jobs enqueued while draining) before the
loop gets to anything else, timers included.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from scriptloop.config import DrainConfig
from scriptloop.engine.jobs import Job, JobQueue
from scriptloop.engine.values import EngineError, display

from .loop import LoopHandle, RunningLoopRegistry

if TYPE_CHECKING:
    from scriptloop.engine.promise import EnginePromise
    from scriptloop.engine.runtime import ScriptEngine

logger = logging.getLogger(__name__)

UnhandledRejectionHandler = Callable[["EnginePromise"], None]


class JobDrainBridge(JobQueue):
    """Engine job queue drained by the running host loop."""

    def __init__(
        self,
        registry: RunningLoopRegistry,
        config: Optional[DrainConfig] = None,
    ):
        super().__init__()
        self._registry = registry
        self._config = config or DrainConfig()
        self._engine: Optional["ScriptEngine"] = None
        self._scheduled_on: Optional[asyncio.AbstractEventLoop] = None
        self._draining = False
        self.unhandled_rejection_handler: UnhandledRejectionHandler = self._log_unhandled_rejection

    def attach(self, engine: "ScriptEngine") -> None:
        """Attach the engine whose rejection tracker is reported after drains."""
        self._engine = engine

    def check_ready(self) -> None:
        # Promise jobs can only ever run if a loop will drain them
        self._registry.require()

    def enqueue(self, job: Job) -> None:
        super().enqueue(job)
        self._schedule()

    def drain(self) -> int:
        """Run queued jobs until the queue is empty.

        Returns:
            The number of jobs run. Re-entrant calls return 0 and leave the
            work to the outer pass.
        """
        if self._draining:
            return 0

        self._draining = True
        count = 0
        try:
            while (job := self.pop()) is not None:
                count += 1
                try:
                    job()
                except Exception as e:
                    self._report_job_failure(e)
                if count == self._config.warn_after_jobs:
                    logger.warning(f"Job drain has run {count} jobs without emptying the queue")
        finally:
            self._draining = False

        if count:
            logger.debug(f"Drained {count} engine job(s)")
        self._report_unhandled_rejections()
        return count

    def post_threadsafe(self, handle: LoopHandle, callback: Callable[..., Any], *args: Any) -> None:
        """Run ``callback`` on the loop thread, then drain.

        This is the only way work finished on another thread may touch
        engine objects.
        """
        def run() -> None:
            callback(*args)
            self.drain()

        handle.call_soon_threadsafe(run)

    def _schedule(self) -> None:
        if self._draining:
            return
        handle = self._registry.current()
        if handle is None:
            # Nothing can drain right now; the next loop that enqueues will
            return
        if self._scheduled_on is handle.loop:
            return
        self._scheduled_on = handle.loop
        handle.call_soon(self._run_scheduled)

    def _run_scheduled(self) -> None:
        self._scheduled_on = None
        self.drain()

    def _report_job_failure(self, error: Exception) -> None:
        handle = self._registry.current()
        if handle is None:
            logger.error(f"Engine job failed: {error}", exc_info=error)
            return
        handle.report("Unhandled exception in engine job", error)

    def _report_unhandled_rejections(self) -> None:
        if self._engine is None or not self._config.report_unhandled_rejections:
            return
        for promise in self._engine.take_unhandled_rejections():
            try:
                self.unhandled_rejection_handler(promise)
            except Exception as e:
                logger.error(f"Unhandled rejection handler error: {e}")

    @staticmethod
    def _log_unhandled_rejection(promise: "EnginePromise") -> None:
        reason = promise.result
        text = reason.render() if isinstance(reason, EngineError) else display(reason)
        logger.warning(f"Unhandled promise rejection: {text}")
