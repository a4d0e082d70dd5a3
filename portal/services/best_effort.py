"""Best-Effort Side Effects — run secondary work whose failure must not fail the request.

Invariants:
    - Every failure is logged at WARNING with the step name, then discarded
    - asyncio.CancelledError is never swallowed (BaseException, not Exception)
    - Spawned tasks are strongly referenced until done (no GC mid-flight)

Design Decisions:
    - Explicit helpers over scattered try/except: grep for best_effort finds
      every place the app deliberately ignores an error
    - When a DB session is passed, a failed step rolls it back so the caller
      can keep using the session for the next step. Steps that run mid-
      transaction pass savepoint=True and only lose their own writes
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Coroutine, Any

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_background_tasks: set[asyncio.Task] = set()


@asynccontextmanager
async def best_effort(
    step: str,
    db: AsyncSession | None = None,
    *,
    savepoint: bool = False,
    **log_extra: Any,
) -> AsyncIterator[None]:
    """Context manager that logs and suppresses any Exception raised in its body.

    With savepoint=True the body runs inside db.begin_nested(): a failure
    rolls back only the body's own writes and the caller's pending work and
    loaded instances survive. Otherwise a failure rolls back the whole session.
    """
    try:
        if savepoint and db is not None:
            async with db.begin_nested():
                yield
        else:
            yield
    except Exception as e:
        if db is not None and not savepoint:
            await db.rollback()
        logger.warning(
            f"Best-effort step failed: {step}: {e}",
            extra={"step": step, **log_extra},
        )


def spawn_best_effort(coro: Coroutine[Any, Any, Any], step: str) -> asyncio.Task:
    """Fire-and-forget: schedule coro, log (never raise) its failure."""
    task = asyncio.create_task(coro, name=step)
    _background_tasks.add(task)

    def _done(t: asyncio.Task) -> None:
        _background_tasks.discard(t)
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            logger.warning(
                f"Background step failed: {step}: {exc}", extra={"step": step},
            )

    task.add_done_callback(_done)
    return task


async def gather_best_effort(
    step: str, *coros: Coroutine[Any, Any, Any],
) -> list[Any]:
    """Run coros concurrently; failed ones are logged and yield None."""
    results = await asyncio.gather(*coros, return_exceptions=True)
    cleaned: list[Any] = []
    for result in results:
        if isinstance(result, Exception):
            logger.warning(
                f"Best-effort step failed: {step}: {result}", extra={"step": step},
            )
            cleaned.append(None)
        elif isinstance(result, BaseException):
            raise result
        else:
            cleaned.append(result)
    return cleaned
