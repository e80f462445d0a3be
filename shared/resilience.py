"""
Resilient call wrapper for network boundaries.

Every call to an external backend goes through resilient_call, which applies
one RetryPolicy: a hard per-attempt timeout plus bounded exponential backoff.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Tuple, Type

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import TransientBackendError

logger = logging.getLogger(__name__)

# Failures worth another attempt; anything else propagates immediately
RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (
    asyncio.TimeoutError,
    httpx.HTTPError,
    ConnectionError,
    OSError,
    TransientBackendError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy for one network boundary.

    Attempt n (1-based) waits base_delay * 2 ** (n - 1) seconds before
    attempt n + 1, capped at max_delay.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    timeout: float = 120.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")


async def resilient_call(
    fn: Callable[..., Awaitable[Any]],
    *args,
    policy: RetryPolicy,
    description: str = "backend call",
    **kwargs,
) -> Any:
    """
    Await fn(*args, **kwargs) under the policy's timeout and retry budget.

    Raises:
        TransientBackendError: retryable failures exhausted the budget
        Exception: non-retryable errors from fn, unchanged
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(multiplier=policy.base_delay, max=policy.max_delay),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=False,
    )

    try:
        async for attempt in retrying:
            with attempt:
                result = await asyncio.wait_for(fn(*args, **kwargs), timeout=policy.timeout)
    except RetryError as e:
        cause = e.last_attempt.exception()
        logger.error(f"{description} failed after {policy.max_attempts} attempts: {cause!r}")
        raise TransientBackendError(
            f"{description} failed after {policy.max_attempts} attempts: {cause!r}"
        ) from cause

    return result
