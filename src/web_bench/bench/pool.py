"""Fixed-size asyncio worker pool over a shared claim cursor."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable, Sequence

from web_bench.bench.models import AuditResult, Target

logger = logging.getLogger(__name__)

TaskFn = Callable[[Target], Awaitable[AuditResult]]
ResultCallback = Callable[[AuditResult], None]


class ClaimCursor:
    """Monotonic index over a sequence; each index is handed out once."""

    def __init__(self, total: int) -> None:
        self.total = total
        self._next = 0
        self._lock = threading.Lock()

    def claim(self) -> int | None:
        """Claim the next unprocessed index, or ``None`` when exhausted."""

        with self._lock:
            if self._next >= self.total:
                return None
            index = self._next
            self._next += 1
            return index

    @property
    def claimed(self) -> int:
        with self._lock:
            return self._next


async def run_pool(
    targets: Sequence[Target],
    *,
    concurrency: int,
    task: TaskFn,
    on_result: ResultCallback,
) -> int:
    """Run ``task`` once per target with at most ``concurrency`` in flight.

    Returns the number of completed targets. An exception from ``task`` or
    ``on_result`` cancels the other workers and propagates.
    """

    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")
    if not targets:
        return 0

    cursor = ClaimCursor(len(targets))
    completed = 0

    async def _worker(worker_no: int) -> None:
        nonlocal completed
        while True:
            index = cursor.claim()
            if index is None:
                logger.debug("Worker %d exhausted the cursor", worker_no)
                return
            result = await task(targets[index])
            on_result(result)
            completed += 1

    workers = [
        asyncio.create_task(_worker(worker_no), name=f"bench-worker-{worker_no}")
        for worker_no in range(min(concurrency, len(targets)))
    ]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise
    return completed
