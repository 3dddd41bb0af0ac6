"""Background sweep of expired idempotency records.

Expired records are already treated as absent on lookup; the sweep reclaims
their memory and the per-key locks nobody holds any more.

Examples:
    >>> task = await start_cleanup_task(storage, interval_seconds=300)
    >>> ...
    >>> await stop_cleanup_task(task)
"""

import asyncio

from api_conventions.observability.logging import get_logger
from api_conventions.observability.metrics import record_cleanup
from api_conventions.storage.base import StorageAdapter

logger = get_logger(__name__)


async def sweep_once(storage: StorageAdapter) -> int:
    """Run a single sweep and return the number of records removed."""
    removed = await storage.cleanup_expired()
    record_cleanup(removed)
    if removed:
        logger.info("cleanup.swept", records_removed=removed)
    return removed


async def cleanup_loop(
    storage: StorageAdapter,
    interval_seconds: float = 300,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Sweep every ``interval_seconds`` until ``stop_event`` is set.

    A failing sweep is logged and retried on the next interval.
    """
    stop = stop_event if stop_event is not None else asyncio.Event()
    logger.info("cleanup.started", interval_seconds=interval_seconds)

    while not stop.is_set():
        try:
            await sweep_once(storage)
        except Exception as e:
            logger.error("cleanup.failed", error=str(e), error_type=type(e).__name__)

        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
        except TimeoutError:
            pass

    logger.info("cleanup.stopped")


async def start_cleanup_task(
    storage: StorageAdapter,
    interval_seconds: float = 300,
) -> asyncio.Task[None]:
    """Start cleanup_loop() in the background; stop it with stop_cleanup_task()."""
    stop = asyncio.Event()
    task = asyncio.create_task(cleanup_loop(storage, interval_seconds, stop))
    task.stop_event = stop  # type: ignore[attr-defined]
    return task


async def stop_cleanup_task(task: asyncio.Task[None], grace_seconds: float = 5.0) -> None:
    """Ask the loop to finish, cancelling it if it is still running after ``grace_seconds``."""
    stop: asyncio.Event | None = getattr(task, "stop_event", None)
    if stop is not None:
        stop.set()

    done, _ = await asyncio.wait({task}, timeout=grace_seconds)
    if done:
        return

    logger.warning("cleanup.stop_timeout", grace_seconds=grace_seconds)
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.debug("cleanup.cancelled")
