import asyncio
import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import aiohttp
import pytest

from site_migrator.utils.errors import RateLimitedError, StorageError
from site_migrator.utils.retry import (
    DOWNLOAD_POLICY,
    RATE_LIMIT_POLICY,
    RetryPolicy,
    policy_with_delays,
    with_retries,
)


class Flaky:
    def __init__(self, failures, exc_factory, result="done"):
        self.failures = failures
        self.exc_factory = exc_factory
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc_factory()
        return self.result


def run(operation, policy):
    waits = []

    async def sleep(seconds):
        waits.append(seconds)

    async def go():
        return await with_retries(operation, policy, label="test", sleep=sleep)

    return asyncio.run(go()), waits


def test_download_policy_waits_between_attempts():
    op = Flaky(2, lambda: aiohttp.ClientConnectionError("reset"))
    result, waits = run(op, DOWNLOAD_POLICY)
    assert result == "done"
    assert op.calls == 3
    assert waits == [0.5, 1.5]


def test_gives_up_after_the_last_attempt():
    op = Flaky(10, lambda: asyncio.TimeoutError())
    with pytest.raises(asyncio.TimeoutError):
        run(op, DOWNLOAD_POLICY)
    assert op.calls == DOWNLOAD_POLICY.max_attempts


def test_non_retryable_errors_propagate_immediately():
    op = Flaky(1, lambda: ValueError("bad"))
    with pytest.raises(ValueError):
        run(op, DOWNLOAD_POLICY)
    assert op.calls == 1


def test_rate_limit_policy_only_retries_rate_limits():
    op = Flaky(2, lambda: RateLimitedError("slow down"))
    result, waits = run(op, RATE_LIMIT_POLICY)
    assert result == "done"
    assert waits == [30.0, 30.0]

    op = Flaky(1, lambda: StorageError("Too Many Requests"))
    assert run(op, RATE_LIMIT_POLICY)[0] == "done"

    op = Flaky(1, lambda: StorageError("forbidden"))
    with pytest.raises(StorageError):
        run(op, RATE_LIMIT_POLICY)
    assert op.calls == 1


def test_rate_limit_policy_allows_five_attempts():
    op = Flaky(10, lambda: RateLimitedError("429"))
    with pytest.raises(RateLimitedError):
        run(op, RATE_LIMIT_POLICY)
    assert op.calls == 5


def test_delay_schedule_reuses_the_last_value():
    policy = RetryPolicy(max_attempts=4, delays=(1.0,), retryable=lambda exc: isinstance(exc, KeyError))
    op = Flaky(3, lambda: KeyError("x"))
    result, waits = run(op, policy)
    assert result == "done"
    assert waits == [1.0, 1.0, 1.0]


def test_policy_with_delays_keeps_attempts_and_predicate():
    fast = policy_with_delays(DOWNLOAD_POLICY, [0])
    assert fast.max_attempts == 3
    assert fast.retryable is DOWNLOAD_POLICY.retryable
    assert fast.delay_for(2) == 0
