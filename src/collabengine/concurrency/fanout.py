"""Phase-level fan-out: run a batch of agent tasks with a concurrency cap."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)

# Phase fan-out caps: drafts spread widest, later phases are gentler on providers.
DRAFT_MAX_CONCURRENT = 6
CRITIQUE_MAX_CONCURRENT = 4
VOTE_MAX_CONCURRENT = 3


async def run_bounded(
    factories: Sequence[Callable[[], Awaitable[Any]]],
    max_concurrent: int,
    fail_fast: tuple[type[BaseException], ...] = (),
) -> list[Any]:
    """
    Run every factory with at most max_concurrent in flight.

    Returns one entry per factory in submission order: the result, or the
    exception it raised. An exception matching fail_fast cancels the rest
    of the batch and is re-raised.
    """
    semaphore = asyncio.Semaphore(max(1, max_concurrent))

    async def _run(factory: Callable[[], Awaitable[Any]]) -> Any:
        async with semaphore:
            return await factory()

    tasks = [asyncio.ensure_future(_run(f)) for f in factories]
    pending = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(
                pending, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                if task.cancelled():
                    continue
                exc = task.exception()
                if fail_fast and isinstance(exc, fail_fast):
                    logger.warning(
                        f"[FanOut] {type(exc).__name__} -- cancelling "
                        f"{len(pending)} remaining task(s)"
                    )
                    raise exc
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    results: list[Any] = []
    for task in tasks:
        if task.cancelled():
            results.append(asyncio.CancelledError())
        elif task.exception() is not None:
            results.append(task.exception())
        else:
            results.append(task.result())
    return results
