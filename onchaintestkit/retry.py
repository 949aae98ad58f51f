"""
Retry helpers

Backoff delay functions and a blocking retry loop. Only the node startup
sequence retries; everything else propagates its first failure.
"""

import random
import time
from typing import Callable, Optional, Type, TypeVar

T = TypeVar('T')


def exponential_backoff(
    attempt: int,
    base_delay: float = 0.1,
    max_delay: float = 5.0,
    multiplier: float = 1.5,
    jitter: bool = True,
) -> float:
    """
    Exponential backoff delay with optional jitter

    Args:
        attempt: Zero-based attempt number that just failed
        base_delay: Delay for attempt 0 (seconds)
        max_delay: Upper bound before jitter (seconds)
        multiplier: Growth factor per attempt
        jitter: Add +/-25% random jitter so parallel workers spread out

    Returns:
        Delay in seconds, never negative
    """
    delay = min(base_delay * multiplier ** attempt, max_delay)
    if jitter:
        jitter_range = delay * 0.25
        delay += random.uniform(-jitter_range, jitter_range)
    return max(0.0, delay)


def linear_backoff(attempt: int, increment: float) -> float:
    """Delay that grows by `increment` seconds per attempt."""
    return max(0.0, attempt * increment)


def execute_with_retry(
    operation: Callable[[], T],
    max_attempts: int,
    delay_fn: Callable[[int], float] = exponential_backoff,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    error_cls: Type[Exception] = RuntimeError,
    description: str = "Operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run an operation until it succeeds or the attempt budget is spent

    Args:
        operation: Zero-argument callable to run
        max_attempts: Total number of attempts (>= 1)
        delay_fn: Maps zero-based attempt number to a delay in seconds
        on_retry: Called as on_retry(attempt, error, delay) before sleeping
        error_cls: Exception type raised once all attempts failed
        description: Leading text of the final error message
        sleep: Sleep function (injectable for tests)

    Returns:
        Result of the first successful call

    Raises:
        error_cls: After max_attempts failures, naming the count and last error
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: Optional[Exception] = None
    for attempt in range(max_attempts):
        try:
            return operation()
        except Exception as e:
            last_error = e
            if attempt < max_attempts - 1:
                delay = delay_fn(attempt)
                if on_retry is not None:
                    on_retry(attempt, e, delay)
                sleep(delay)

    raise error_cls(
        f"{description} failed after {max_attempts} attempts. Last error: {last_error}"
    ) from last_error
