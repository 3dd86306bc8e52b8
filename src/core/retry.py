"""
Bounded retry policy for calls that leave the process.

Wraps fetch, completion and search calls with tenacity: a fixed number
of attempts with exponential backoff, retrying only transient errors.
After the last attempt the original exception is re-raised so callers
handle it like any other per-branch failure.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.errors import CapabilityUnavailableError, FetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    FetchError,
    CapabilityUnavailableError,
    TimeoutError,
)


class RetryPolicy:
    """Retry configuration, usually built from Settings."""

    def __init__(self, attempts: int = 3, backoff_seconds: float = 1.0, max_wait: float = 20.0) -> None:
        self.attempts = max(1, attempts)
        self.backoff_seconds = backoff_seconds
        self.max_wait = max_wait

    async def call(self, func: Callable[[], Awaitable[T]], *, timeout: float | None = None) -> T:
        """Run ``func`` under the policy, applying ``timeout`` to each attempt."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=self.max_wait),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                if timeout is None:
                    return await func()
                async with asyncio.timeout(timeout):
                    return await func()
        raise AssertionError("unreachable")  # pragma: no cover


# Used by tests and by collaborators constructed without settings
NO_RETRY = RetryPolicy(attempts=1, backoff_seconds=0.0)
