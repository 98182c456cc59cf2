"""Async retry with exponential backoff for remote source calls."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Sequence, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


def compute_backoff_delay(
    attempt: int,
    *,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    rng: Optional[random.Random] = None,
) -> float:
    """Delay before retry number ``attempt`` (0-based), capped at ``max_delay``.

    With jitter the delay is scaled by a factor in [0.5, 1.5).
    """
    delay = min(base_delay * (exponential_base**attempt), max_delay)
    if jitter:
        delay *= 0.5 + (rng or random).random()
    return delay


async def async_retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Optional[Sequence[Type[BaseException]]] = None,
    rng: Optional[random.Random] = None,
    sleep_func: Optional[SleepFunc] = None,
) -> T:
    """Call ``func`` until it succeeds or ``max_retries`` retries are spent.

    Args:
        func: Zero-argument async callable (wrap arguments in a lambda).
        max_retries: Retries after the first attempt.
        base_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for any single delay.
        exponential_base: Growth factor per retry.
        jitter: Randomize each delay to 50-150% of its nominal value.
        retryable_exceptions: Exception types worth retrying (default: all).
            An exception carrying a ``retry_after`` value waits that long
            (capped at ``max_delay``) instead of the computed backoff.
        rng: Injectable Random instance for deterministic tests.
        sleep_func: Injectable sleep for tests.

    Returns:
        Whatever ``func`` returns on its first successful attempt.

    Raises:
        The last exception once retries are exhausted, or any
        non-retryable exception immediately.
    """
    retryable = tuple(retryable_exceptions or (Exception,))
    sleep = sleep_func or asyncio.sleep

    attempt = 0
    while True:
        try:
            return await func()
        except retryable as exc:
            if attempt >= max_retries:
                raise
            retry_after = getattr(exc, "retry_after", None)
            if retry_after is not None:
                delay = min(float(retry_after), max_delay)
            else:
                delay = compute_backoff_delay(
                    attempt,
                    base_delay=base_delay,
                    max_delay=max_delay,
                    exponential_base=exponential_base,
                    jitter=jitter,
                    rng=rng,
                )
            logger.debug(
                "Retrying after %s (attempt %d/%d, sleeping %.2fs)",
                type(exc).__name__,
                attempt + 1,
                max_retries,
                delay,
            )
            attempt += 1
            await sleep(delay)
