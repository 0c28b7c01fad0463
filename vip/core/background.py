"""
Background Write-back Pool

Fire-and-forget persistence of computed variants. Tasks are detached from
the request that submitted them, bounded in number, and their failures
only reach the logger and the metrics.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Set

from vip.core.logging import get_logger
from vip.core.metrics import record_write_back

logger = get_logger(__name__)


class WriteBackPool:
    """
    Bounded pool of detached asyncio tasks.

    Usage:
        pool = WriteBackPool(max_pending=256, max_concurrency=8)
        pool.submit("write_modified", lambda: storage.write_modified(...))
    """

    def __init__(self, max_pending: int = 256, max_concurrency: int = 8):
        self.max_pending = max_pending
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, work: Callable[[], Awaitable[None]], **log_fields) -> bool:
        """
        Schedule ``work`` without waiting for it.

        Returns False when the pool is full and the work was dropped.
        Must be called from inside the running event loop.
        """
        if len(self._tasks) >= self.max_pending:
            logger.warning("write_back_dropped", task=name, pending=len(self._tasks), **log_fields)
            record_write_back("dropped")
            return False

        task = asyncio.create_task(self._run(name, work, log_fields), name=f"write_back:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(self, name: str, work: Callable[[], Awaitable[None]], log_fields: dict):
        async with self._semaphore:
            try:
                await work()
            except Exception as e:
                logger.warning(
                    "write_back_failed",
                    task=name,
                    error=str(e),
                    error_type=type(e).__name__,
                    **log_fields
                )
                record_write_back("failed")
                return

        logger.debug("write_back_completed", task=name, **log_fields)
        record_write_back("success")

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for outstanding write-backs.

        Returns False if the timeout expired first. Never raises task errors.
        """
        if not self._tasks:
            return True

        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("write_back_drain_timeout", pending=len(pending))
            return False
        return True
