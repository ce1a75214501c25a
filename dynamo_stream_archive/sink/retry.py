"""
Retry mechanism with exponential backoff for handling transient failures.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar, Union

from dynamo_stream_archive.errors import (
    RetryExhaustedError,
    TransientSinkError,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)


def exponential_backoff_with_jitter(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    jitter: bool = True,
) -> float:
    """
    Calculate exponential backoff delay with optional jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        jitter: Whether to add random jitter to prevent thundering herd

    Returns:
        Delay in seconds, never above max_delay
    """
    delay: float = min(base_delay * (2**attempt), max_delay)

    if jitter:
        # Jitter between 0 and 25% of the delay, capped at max_delay
        delay = min(delay * (1 + random.random() * 0.25), max_delay)

    return delay


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff settings."""

    max_attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 5.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given 0-indexed failed attempt."""
        return exponential_backoff_with_jitter(
            attempt, self.base_delay, self.max_delay, self.jitter
        )


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    retry_on: Union[
        Type[Exception], Tuple[Type[Exception], ...]
    ] = TransientSinkError,
    sleep: Callable[[float], None] = time.sleep,
    description: Optional[str] = None,
) -> T:
    """
    Call ``func`` until it succeeds, retrying only ``retry_on`` errors.

    Any other exception propagates immediately. When every attempt fails
    with a retryable error, RetryExhaustedError is raised carrying the last
    one.
    """
    last_exception: Optional[Exception] = None

    for attempt in range(policy.max_attempts):
        try:
            return func()
        except retry_on as exc:
            last_exception = exc
            # Don't sleep after the last attempt
            if attempt < policy.max_attempts - 1:
                delay = policy.delay_for(attempt)
                logger.info(
                    "Retrying after transient failure",
                    extra={
                        "operation": description,
                        "attempt": attempt + 1,
                        "delay_seconds": delay,
                        "error": str(exc),
                    },
                )
                sleep(delay)

    raise RetryExhaustedError(
        f"Failed after {policy.max_attempts} attempts",
        last_exception or Exception("Unknown error"),
    )


__all__ = ["RetryPolicy", "call_with_retry", "exponential_backoff_with_jitter"]
