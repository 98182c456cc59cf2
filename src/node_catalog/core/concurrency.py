"""
Bounded-parallelism helpers for node-catalog.

Blob downloads in the GitHub source and ``LazyNodeRegistry.load_all()`` both
fan out over many small async jobs. ``ConcurrencyLimiter`` caps how many run
at once and reports per-job outcomes in a ``GatherResult``.

Example:
    from node_catalog.core.concurrency import ConcurrencyLimiter

    limiter = ConcurrencyLimiter(max_concurrent=8, name="blobs")
    result = await limiter.map(fetch_blob, paths, return_exceptions=True)
    records = result.successful_results()
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class ConcurrencyStats:
    """Outcome counters for one ``map`` call.

    Attributes:
        total: Jobs submitted
        succeeded: Jobs that returned normally
        failed: Jobs that raised (timeouts included)
        timed_out: Jobs stopped by the per-job timeout
        elapsed_seconds: Wall time for the whole batch
    """

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    timed_out: int = 0
    elapsed_seconds: float = 0.0


@dataclass
class GatherResult:
    """Per-job results and errors, index-aligned with the submitted items."""

    results: List[Any] = field(default_factory=list)
    errors: List[Optional[BaseException]] = field(default_factory=list)
    stats: ConcurrencyStats = field(default_factory=ConcurrencyStats)

    @property
    def all_succeeded(self) -> bool:
        return self.stats.failed == 0

    def successful_results(self) -> List[Any]:
        """Results of the jobs that did not raise, in submission order."""
        return [r for r, e in zip(self.results, self.errors) if e is None]

    def failed_results(self) -> List[Tuple[int, BaseException]]:
        """(index, error) pairs for the jobs that raised."""
        return [(i, e) for i, e in enumerate(self.errors) if e is not None]


class ConcurrencyLimiter:
    """Semaphore-backed cap on simultaneous async jobs.

    Example:
        >>> limiter = ConcurrencyLimiter(max_concurrent=4)
        >>> async with limiter.acquire():
        ...     await download()
    """

    def __init__(
        self,
        max_concurrent: int = 10,
        *,
        name: str = "",
        timeout: Optional[float] = None,
    ):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {max_concurrent}")
        self.max_concurrent = max_concurrent
        self.name = name
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._active = 0
        self._processed = 0

    @property
    def active_count(self) -> int:
        return self._active

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[None]:
        """Hold one slot for the duration of the ``async with`` block."""
        async with self._semaphore:
            self._active += 1
            self._processed += 1
            try:
                yield
            finally:
                self._active -= 1

    async def run(self, job: Awaitable[T], *, timeout: Optional[float] = None) -> T:
        """Await ``job`` inside a slot, bounded by the per-job timeout if any."""
        limit = timeout if timeout is not None else self.timeout
        async with self.acquire():
            if limit:
                return await asyncio.wait_for(job, timeout=limit)
            return await job

    async def map(
        self,
        func: Callable[[T], Awaitable[R]],
        items: Sequence[T],
        *,
        return_exceptions: bool = False,
        timeout: Optional[float] = None,
    ) -> GatherResult:
        """Apply ``func`` to every item with at most ``max_concurrent`` in flight.

        Args:
            func: Async callable invoked once per item
            items: Inputs, in the order results are reported
            return_exceptions: Record failures in ``GatherResult.errors``
                instead of raising the first one
            timeout: Per-job timeout override

        Returns:
            GatherResult aligned with ``items``

        Raises:
            Exception: The first job failure when ``return_exceptions`` is False;
                the remaining jobs are cancelled.
        """
        started = time.monotonic()
        stats = ConcurrencyStats(total=len(items))
        results: List[Any] = [None] * len(items)
        errors: List[Optional[BaseException]] = [None] * len(items)

        async def run_one(index: int, item: T) -> None:
            try:
                results[index] = await self.run(func(item), timeout=timeout)
                stats.succeeded += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                errors[index] = exc
                stats.failed += 1
                if isinstance(exc, asyncio.TimeoutError):
                    stats.timed_out += 1
                if not return_exceptions:
                    raise

        tasks = [asyncio.create_task(run_one(i, item)) for i, item in enumerate(items)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            raise
        finally:
            stats.elapsed_seconds = time.monotonic() - started

        if stats.failed:
            logger.debug(
                "Limiter %s: %d/%d jobs failed",
                self.name or "<anonymous>",
                stats.failed,
                stats.total,
            )
        return GatherResult(results=results, errors=errors, stats=stats)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "max_concurrent": self.max_concurrent,
            "active_count": self._active,
            "total_processed": self._processed,
            "timeout": self.timeout,
        }


__all__ = [
    "ConcurrencyLimiter",
    "ConcurrencyStats",
    "GatherResult",
]
