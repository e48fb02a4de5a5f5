"""
Bounded-Concurrency Task Runner

Runs a set of independent async tasks with at most K in flight, keeping
results in input order and isolating failures per task.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import (
    Any, Awaitable, Callable, Generic, Iterable, List, Optional, Sequence, TypeVar
)

from intake_gateway.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")
A = TypeVar("A")


@dataclass
class TaskResult(Generic[T]):
    """Outcome of one task"""
    index: int
    success: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None
    duration: float = 0.0


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split a sequence into consecutive chunks of at most `size` items"""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class BoundedTaskRunner:
    """
    Worker-pool style runner.

    K workers pull from a shared iterator over the tasks, so a new task
    starts as soon as any slot frees up. A failing or timed-out task is
    recorded in its own TaskResult and never affects its siblings.
    """

    def __init__(self, concurrency: int = 5, timeout: Optional[float] = None):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.timeout = timeout

    async def _execute(self, index: int, task: Callable[[], Awaitable[T]]) -> TaskResult[T]:
        started = time.monotonic()
        try:
            if self.timeout is not None:
                value = await asyncio.wait_for(task(), timeout=self.timeout)
            else:
                value = await task()
            return TaskResult(index=index, success=True, value=value,
                              duration=time.monotonic() - started)
        except asyncio.TimeoutError as e:
            logger.warning(f"Task {index} timed out after {self.timeout}s")
            return TaskResult(index=index, success=False, error=e,
                              duration=time.monotonic() - started)
        except Exception as e:
            logger.debug(f"Task {index} failed: {e}")
            return TaskResult(index=index, success=False, error=e,
                              duration=time.monotonic() - started)

    async def run(self, tasks: Sequence[Callable[[], Awaitable[T]]]) -> List[TaskResult[T]]:
        """
        Run every task with bounded concurrency

        Args:
            tasks: Zero-argument async callables

        Returns:
            One TaskResult per task, in input order
        """
        results: List[Optional[TaskResult[T]]] = [None] * len(tasks)
        if not tasks:
            return []

        pending = iter(enumerate(tasks))

        async def worker():
            # Single event loop: next() on the shared iterator never interleaves
            for index, task in pending:
                results[index] = await self._execute(index, task)

        workers = min(self.concurrency, len(tasks))
        await asyncio.gather(*(worker() for _ in range(workers)))
        return results  # type: ignore[return-value]

    async def map(
        self,
        items: Iterable[A],
        func: Callable[[A], Awaitable[R]],
    ) -> List[TaskResult[R]]:
        """Apply an async function to every item"""
        return await self.run([lambda item=item: func(item) for item in items])

    async def run_in_batches(
        self,
        items: Sequence[A],
        batch_func: Callable[[List[A]], Awaitable[R]],
        batch_size: int,
    ) -> List[TaskResult[R]]:
        """Chunk the items and run batch_func once per chunk"""
        return await self.map(chunked(items, batch_size), batch_func)

    async def map_reduce(
        self,
        items: Iterable[A],
        mapper: Callable[[A], Awaitable[R]],
        reducer: Callable[[Any, R], Any],
        initial: Any,
    ) -> Any:
        """
        Map every item concurrently, then fold successful values in input order.
        Failed items are skipped and logged.
        """
        accumulator = initial
        for result in await self.map(items, mapper):
            if result.success:
                accumulator = reducer(accumulator, result.value)
            else:
                logger.warning(f"map_reduce skipped item {result.index}: {result.error}")
        return accumulator
