"""Engine job (microtask) queue."""

from __future__ import annotations

from collections import deque
from typing import Callable, Optional

Job = Callable[[], None]


class JobQueue:
    """FIFO of pending engine jobs.

    Standalone queues accept jobs at any time and are drained explicitly
    with :meth:`run_pending`. Embeddings subclass it to hook job
    scheduling into a host loop.
    """

    def __init__(self) -> None:
        self._jobs: deque[Job] = deque()

    def check_ready(self) -> None:
        """Raise if the queue cannot currently accept promise jobs."""

    def enqueue(self, job: Job) -> None:
        self._jobs.append(job)

    def pop(self) -> Optional[Job]:
        if not self._jobs:
            return None
        return self._jobs.popleft()

    def run_pending(self) -> int:
        """Run jobs until the queue is empty, including newly enqueued ones."""
        count = 0
        while (job := self.pop()) is not None:
            job()
            count += 1
        return count

    @property
    def is_empty(self) -> bool:
        return not self._jobs

    def __len__(self) -> int:
        return len(self._jobs)
