"""Bounded-concurrency execution stage.

A producer feeds items into a bounded queue; a fixed pool of workers takes
items off the queue and runs the unit of work for each one. The stage only
returns once every worker has drained, and a failing item never stops its
siblings.
"""

import asyncio
import inspect
from collections.abc import AsyncIterable, Awaitable, Callable, Iterable
from typing import Any

from content_migration.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONCURRENCY = 12
DEFAULT_QUEUE_SIZE = 100

_STOP = object()


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ConcurrencyBoundedPipeline:
    """Run an async unit of work over a stream of items.

    For every item the pipeline awaits ``work(item)``, then calls
    ``on_success(item, result)`` or ``on_error(error, item)``, and finally
    ``on_increment()``. An exception raised by ``on_success`` is routed to
    ``on_error``. Callbacks may be plain functions or coroutines.

    Example:
        >>> pipeline = ConcurrencyBoundedPipeline(
        ...     "create_stories", create_story, on_success=record, concurrency=12
        ... )
        >>> await pipeline.run(reader)
    """

    def __init__(
        self,
        name: str,
        work: Callable[[Any], Awaitable[Any]],
        on_success: Callable[[Any, Any], Any] | None = None,
        on_error: Callable[[Exception, Any], Any] | None = None,
        on_increment: Callable[[], Any] | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        """Initialize pipeline.

        Args:
            name: Stage name used in log events
            work: Coroutine function performing the unit of work
            on_success: Called with (item, result) after successful work
            on_error: Called with (error, item) when work or on_success fails
            on_increment: Called once per item after the other callbacks
            concurrency: Number of workers (units of work in flight)
            queue_size: Maximum items buffered between producer and workers
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.name = name
        self.work = work
        self.on_success = on_success
        self.on_error = on_error
        self.on_increment = on_increment
        self.concurrency = concurrency
        self.queue_size = queue_size

    async def run(self, items: Iterable[Any] | AsyncIterable[Any]) -> int:
        """Process all items and wait for every in-flight unit to finish.

        Returns:
            Number of items processed
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        processed = 0

        async def worker() -> None:
            nonlocal processed
            while True:
                item = await queue.get()
                try:
                    if item is _STOP:
                        return
                    await self._process(item)
                    processed += 1
                finally:
                    queue.task_done()

        logger.debug("pipeline_started", stage=self.name, concurrency=self.concurrency)
        workers = [asyncio.create_task(worker()) for _ in range(self.concurrency)]

        try:
            if isinstance(items, AsyncIterable):
                async for item in items:
                    await queue.put(item)
            else:
                for item in items:
                    await queue.put(item)
            for _ in workers:
                await queue.put(_STOP)
            await asyncio.gather(*workers)
        except BaseException:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        logger.debug("pipeline_drained", stage=self.name, processed=processed)
        return processed

    async def _process(self, item: Any) -> None:
        try:
            try:
                result = await self.work(item)
                if self.on_success is not None:
                    await _maybe_await(self.on_success(item, result))
            except Exception as e:
                await self._report_error(e, item)
        finally:
            if self.on_increment is not None:
                try:
                    await _maybe_await(self.on_increment())
                except Exception as e:
                    logger.error("pipeline_callback_failed", stage=self.name, error=str(e))

    async def _report_error(self, error: Exception, item: Any) -> None:
        if self.on_error is None:
            logger.error(
                "pipeline_item_failed",
                stage=self.name,
                error_type=type(error).__name__,
                error=str(error),
            )
            return
        try:
            await _maybe_await(self.on_error(error, item))
        except Exception as e:
            logger.error(
                "pipeline_callback_failed",
                stage=self.name,
                error=str(e),
                original_error=str(error),
            )
