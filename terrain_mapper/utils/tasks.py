"""
Helpers for running store writes from synchronous code.
"""

import asyncio
from typing import Any, Awaitable, List, Optional, Set

import structlog

logger = structlog.get_logger()

# Strong references to scheduled writes so they are not collected mid-flight
_pending: Set["asyncio.Task[Any]"] = set()

# Failures of writes that finished before anyone drained them
_failed: List[BaseException] = []


def fire_and_forget(awaitable: Awaitable[Any], description: str = "store write") -> Optional["asyncio.Task[Any]"]:
    """
    Run an awaitable without waiting on it.

    Inside a running event loop the awaitable is scheduled as a task. A
    failure is logged when the task completes and kept until the next
    ``drain_pending``. Without a loop it is run to completion immediately,
    so failures propagate to the caller.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(_as_coroutine(awaitable))
        return None

    task = loop.create_task(_as_coroutine(awaitable))
    _pending.add(task)

    def _done(finished: "asyncio.Task[Any]") -> None:
        _pending.discard(finished)
        if finished.cancelled():
            return
        error = finished.exception()
        if error is not None:
            logger.error("Background write failed", operation=description, error=str(error))
            _failed.append(error)

    task.add_done_callback(_done)
    return task


async def drain_pending() -> None:
    """
    Wait for every write scheduled by ``fire_and_forget``.

    Raises the first failure among writes that have not been drained yet,
    including ones that finished earlier. Each failure is raised once.
    """
    if _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)
    if _failed:
        first = _failed[0]
        _failed.clear()
        raise first


async def _as_coroutine(awaitable: Awaitable[Any]) -> Any:
    return await awaitable
