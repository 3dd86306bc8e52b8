"""
tests/test_retry.py

Retry policy and the Slack notifier's no-op mode.
"""

from __future__ import annotations

import asyncio

import pytest

from core.errors import FetchError
from core.notifications.slack import SlackNotifier
from core.retry import RetryPolicy


class Flaky:
    def __init__(self, failures: int, error: Exception) -> None:
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


def test_transient_errors_are_retried() -> None:
    func = Flaky(2, FetchError("https://rival.example", "HTTP 503", 503))
    assert asyncio.run(RetryPolicy(attempts=3, backoff_seconds=0).call(func)) == "ok"
    assert func.calls == 3


def test_last_error_is_reraised() -> None:
    func = Flaky(5, FetchError("https://rival.example", "HTTP 503", 503))
    with pytest.raises(FetchError):
        asyncio.run(RetryPolicy(attempts=2, backoff_seconds=0).call(func))
    assert func.calls == 2


def test_other_errors_are_not_retried() -> None:
    func = Flaky(1, ValueError("bad input"))
    with pytest.raises(ValueError):
        asyncio.run(RetryPolicy(attempts=3, backoff_seconds=0).call(func))
    assert func.calls == 1


def test_per_attempt_timeout() -> None:
    async def slow() -> None:
        await asyncio.sleep(5)

    with pytest.raises(TimeoutError):
        asyncio.run(RetryPolicy(attempts=1).call(slow, timeout=0.05))


def test_slack_without_webhook_is_a_no_op() -> None:
    notifier = SlackNotifier("")
    assert asyncio.run(notifier.price_alert("rival.example", "Headphones", None, 50.0, 60.0, 20.0)) is False
