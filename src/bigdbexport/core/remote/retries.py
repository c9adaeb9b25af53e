"""
Retry and polling utilities with tenacity.

Provides:
- configurable retries for transient failures on record loads
- fixed-interval polling for eventually consistent control-plane state
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    stop_never,
    wait_exponential,
    wait_fixed,
    wait_random_exponential,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT = 1  # seconds
DEFAULT_MAX_WAIT = 30  # seconds
DEFAULT_MULTIPLIER = 2


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        min_wait: float = DEFAULT_MIN_WAIT,
        max_wait: float = DEFAULT_MAX_WAIT,
        multiplier: float = DEFAULT_MULTIPLIER,
        jitter: bool = True,
        retry_exceptions: tuple[type[BaseException], ...] | None = None,
    ):
        """Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts
            min_wait: Minimum wait time in seconds
            max_wait: Maximum wait time in seconds
            multiplier: Exponential backoff multiplier
            jitter: Add random jitter to wait times
            retry_exceptions: Exception types to retry on
        """
        self.max_attempts = max_attempts
        self.min_wait = min_wait
        self.max_wait = max_wait
        self.multiplier = multiplier
        self.jitter = jitter
        self.retry_exceptions = retry_exceptions or (Exception,)

    def wait_strategy(self) -> Any:
        if self.jitter:
            return wait_random_exponential(
                multiplier=self.multiplier,
                min=self.min_wait,
                max=self.max_wait,
            )
        return wait_exponential(
            multiplier=self.multiplier,
            min=self.min_wait,
            max=self.max_wait,
        )


async def retry_async(
    coro_func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    **kwargs: Any,
) -> T:
    """Execute an async function with retry logic.

    The last exception is re-raised once attempts are exhausted.
    """
    if config is None:
        config = RetryConfig()

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=config.wait_strategy(),
        retry=retry_if_exception_type(config.retry_exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await coro_func(*args, **kwargs)


# =============================================================================
# Polling
# =============================================================================


class PollTimeout(Exception):
    """A polled condition did not hold before the deadline."""

    def __init__(self, message: str, last_error: BaseException | None = None):
        super().__init__(message)
        self.last_error = last_error


async def poll_until(
    check: Callable[[], Awaitable[bool]],
    *,
    interval: float,
    max_wait: float | None = None,
    retry_on: tuple[type[BaseException], ...] = (),
    on_wait: Callable[[RetryCallState], None] | None = None,
    description: str = "condition",
) -> None:
    """Call ``check`` every ``interval`` seconds until it returns True.

    Exceptions listed in ``retry_on`` count as "not yet" and are retried
    under the same fixed wait. Without ``max_wait`` the loop only ends
    when the condition holds or the calling task is cancelled.

    Raises:
        PollTimeout: If max_wait elapsed first
    """
    retry = retry_if_result(lambda ok: not ok)
    if retry_on:
        retry = retry | retry_if_exception_type(retry_on)

    retrying = AsyncRetrying(
        stop=stop_never if max_wait is None else stop_after_delay(max_wait),
        wait=wait_fixed(interval),
        retry=retry,
        before_sleep=on_wait,
    )

    try:
        await retrying(check)
    except RetryError as e:
        outcome = e.last_attempt
        last_error = outcome.exception() if outcome.failed else None
        raise PollTimeout(
            f"Gave up waiting for {description} after {max_wait}s",
            last_error=last_error,
        ) from last_error
