"""Timeout racing and detached background tasks.

A backend call that outlives its timeout is abandoned, not cancelled.
Abandoned calls and fire-and-forget writes are tracked by DetachedTasks,
which consumes their eventual outcome for logging only.
"""

import asyncio
from functools import partial
from typing import Any, Awaitable, Optional, Set, TypeVar

from codemap.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class DetachedTasks:
    """Registry of background tasks nobody awaits on the critical path."""

    def __init__(self) -> None:
        self._tasks: Set["asyncio.Future[Any]"] = set()

    def spawn(self, aw: Awaitable[Any], description: str) -> "asyncio.Future[Any]":
        """Schedule ``aw`` in the background.

        Its result or exception is logged when it settles and never
        propagates anywhere else.
        """
        task = asyncio.ensure_future(aw)
        self._tasks.add(task)
        task.add_done_callback(partial(self._on_done, description))
        return task

    def _on_done(self, description: str, task: "asyncio.Future[Any]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug(f"{description}: cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"{description}: failed: {error}")
        else:
            logger.debug(f"{description}: completed")

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for every tracked task to settle.

        Returns False if ``timeout`` seconds elapsed with tasks still running.
        """
        while True:
            outstanding = [task for task in self._tasks if not task.done()]
            if not outstanding:
                # Let done-callbacks scheduled by the last completions run
                await asyncio.sleep(0)
                return True
            _, still_running = await asyncio.wait(outstanding, timeout=timeout)
            if still_running:
                logger.warning(f"{len(still_running)} background task(s) still running after {timeout}s")
                return False


async def with_timeout(
    aw: Awaitable[T],
    timeout_ms: int,
    operation: str,
    detached: DetachedTasks,
) -> T:
    """Race ``aw`` against a ``timeout_ms`` timer.

    Raises TimeoutError when the timer wins. The losing call keeps running
    under ``detached`` and its late outcome is only logged.
    """
    task = asyncio.ensure_future(aw)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000.0)
    except asyncio.CancelledError:
        detached.spawn(task, f"{operation} (caller cancelled)")
        raise

    if task in done:
        return task.result()

    detached.spawn(task, f"{operation} (abandoned after {timeout_ms}ms timeout)")
    raise TimeoutError(f"{operation} timed out after {timeout_ms}ms")
