"""
Bounded fan-out for pipeline stages.

Every stage of generate and rewrite fans out one task per file (or per unique
image) with a concurrency cap. The first failure cancels every sibling still
in flight so a run unwinds promptly instead of finishing useless work.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_MAX_CONCURRENCY = 8


async def run_bounded(
    func: Callable[[T], Awaitable[R]],
    items: Iterable[T],
    limit: int = DEFAULT_MAX_CONCURRENCY,
) -> List[R]:
    """
    Run func(item) for every item with at most `limit` running at once.

    Args:
        func: Coroutine function applied to each item
        items: Inputs, results keep their order
        limit: Maximum number of concurrently running calls

    Returns:
        Results in the same order as items

    Raises:
        The first exception raised by any call. All other calls are
        cancelled and awaited before it propagates.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run_one(item: T) -> R:
        async with semaphore:
            return await func(item)

    tasks = [asyncio.ensure_future(run_one(item)) for item in items]
    if not tasks:
        return []

    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in tasks:
            if task in done and not task.cancelled() and task.exception() is not None:
                raise task.exception()
        return [task.result() for task in tasks]
    finally:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.debug(f"Cancelling {len(pending)} in-flight tasks")
            await asyncio.gather(*pending, return_exceptions=True)
