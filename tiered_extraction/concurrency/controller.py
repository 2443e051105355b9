"""
Concurrency Controller.

Runs an async operation over a list of items with a bounded number of
workers. Each item owns a fixed slot in the results list for its whole
life, so results come back in submission order whatever order the
workers finish in.

Workers are asyncio tasks sharing one deque of (index, item) pairs.
Popping from the deque is the only coordination between them.
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, List, Optional, Sequence, Tuple, TypeVar

from tiered_extraction.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar('T')
R = TypeVar('R')

Operation = Callable[[T, int], Awaitable[R]]


@dataclass
class BatchOptions:
    """
    Settings for one concurrent batch.

    Attributes:
        concurrency: Maximum number of items in flight
        stagger_delay: Seconds between worker start-ups (first item only)
        stop_on_error: Stop claiming new items after the first failure
            and re-raise it
        on_progress: Called with (completed, total) after every item
        on_error: Called with (error, item, index) for every failed item
    """
    concurrency: int = 3
    stagger_delay: float = 0.0
    stop_on_error: bool = False
    on_progress: Optional[Callable[[int, int], None]] = None
    on_error: Optional[Callable[[BaseException, Any, int], None]] = None


async def process_concurrently(
    items: Sequence[T],
    operation: Operation,
    options: Optional[BatchOptions] = None,
) -> List[Optional[R]]:
    """
    Apply ``operation(item, index)`` to every item with bounded concurrency.

    Args:
        items: Items to process.
        operation: Coroutine function called once per item.
        options: BatchOptions; defaults apply when omitted.

    Returns:
        One entry per item, in submission order. Failed items are None.

    Raises:
        ValueError: If concurrency is less than 1.
        Exception: The first item error, when ``stop_on_error`` is set.

    Example:
        >>> results = await process_concurrently(
        ...     requests, lambda request, index: router.extract(request),
        ...     BatchOptions(concurrency=5, stagger_delay=0.2),
        ... )
    """
    options = options or BatchOptions()
    if options.concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {options.concurrency}")

    total = len(items)
    if total == 0:
        return []

    results: List[Optional[R]] = [None] * total
    queue: Deque[Tuple[int, T]] = deque(enumerate(items))
    completed = 0
    first_error: Optional[BaseException] = None

    def report_progress() -> None:
        nonlocal completed
        completed += 1
        if options.on_progress is not None:
            options.on_progress(completed, total)

    async def worker(worker_id: int) -> None:
        nonlocal first_error
        first_item = True
        while queue and first_error is None:
            index, item = queue.popleft()

            if first_item and options.stagger_delay > 0 and worker_id > 0:
                await asyncio.sleep(options.stagger_delay * worker_id)
                if first_error is not None:
                    return
            first_item = False

            logger.debug(f"Worker {worker_id} processing item {index + 1}/{total}")
            try:
                results[index] = await operation(item, index)
            except Exception as e:
                logger.error(f"Worker {worker_id} failed on item {index + 1}: {e}")
                if options.on_error is not None:
                    options.on_error(e, item, index)
                report_progress()
                if options.stop_on_error:
                    if first_error is None:
                        first_error = e
                    return
                continue

            report_progress()
            logger.debug(f"Worker {worker_id} completed item {index + 1}/{total} ({completed}/{total} total)")

    worker_count = min(options.concurrency, total)
    logger.info(f"Starting {worker_count} workers for {total} items")

    await asyncio.gather(*(worker(worker_id) for worker_id in range(worker_count)))

    logger.info(f"All workers finished. Completed: {completed}/{total}")
    if first_error is not None:
        raise first_error
    return results


async def process_batches(
    items: Sequence[T],
    operation: Operation,
    batch_size: int = 3,
) -> List[R]:
    """
    Process items in fixed batches; each batch finishes before the next starts.

    Simpler than process_concurrently and without failure isolation: the
    first error propagates.

    Args:
        items: Items to process.
        operation: Coroutine function called as ``operation(item, index)``.
        batch_size: Items per batch.

    Returns:
        Results in submission order.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    results: List[R] = []
    batch_count = (len(items) + batch_size - 1) // batch_size
    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        batch_results = await asyncio.gather(
            *(operation(item, start + offset) for offset, item in enumerate(batch))
        )
        results.extend(batch_results)
        logger.info(f"Completed batch {start // batch_size + 1}/{batch_count}")
    return results
