"""
Retry policy shared by every network call site that retries.

:class:`RetryPolicy` describes how many attempts an operation gets, how long
to wait between attempts and which exceptions are worth retrying at all.
:func:`with_retries` runs a zero-argument coroutine factory under a policy.

Two policies are predefined:

``DOWNLOAD_POLICY``
    Legacy media downloads: 3 attempts, waiting 0.5 s, 1.5 s then 3 s, on
    transport errors only.  A non-2xx answer is not an exception here and is
    never retried.

``RATE_LIMIT_POLICY``
    Storage deletes: 5 attempts with a fixed 30 s wait, only when the
    backend reports rate limiting.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence, Tuple, TypeVar

import aiohttp

from .errors import RateLimitedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_transport_error(exc: BaseException) -> bool:
    return isinstance(exc, (aiohttp.ClientError, asyncio.TimeoutError, OSError))


def _is_rate_limited(exc: BaseException) -> bool:
    if isinstance(exc, RateLimitedError):
        return True
    return "too many requests" in str(exc).lower()


@dataclass(frozen=True)
class RetryPolicy:
    """How an operation is retried.

    :param max_attempts: Total number of attempts, including the first one.
    :param delays: Seconds to wait after attempt ``n`` fails (``delays[n-1]``);
        the last value is reused when attempts outnumber delays.
    :param retryable: Predicate deciding whether an exception is transient.
    """

    max_attempts: int
    delays: Tuple[float, ...]
    retryable: Callable[[BaseException], bool] = field(default=_is_transport_error)

    def delay_for(self, attempt: int) -> float:
        if not self.delays:
            return 0.0
        return self.delays[min(attempt - 1, len(self.delays) - 1)]


DOWNLOAD_POLICY = RetryPolicy(max_attempts=3, delays=(0.5, 1.5, 3.0), retryable=_is_transport_error)
RATE_LIMIT_POLICY = RetryPolicy(max_attempts=5, delays=(30.0,), retryable=_is_rate_limited)


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await ``operation()`` until it succeeds or the policy gives up.

    Non-retryable exceptions propagate immediately.  When the last attempt
    fails the exception of that attempt propagates.

    :param operation: Zero-argument callable returning a fresh awaitable.
    :param policy: The :class:`RetryPolicy` to apply.
    :param label: Text identifying the operation in warnings.
    :param sleep: Awaitable sleep, replaceable in tests.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if not policy.retryable(exc) or attempt >= policy.max_attempts:
                raise
            wait = policy.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                label or "operation", attempt, policy.max_attempts, wait, exc,
            )
            await sleep(wait)


def policy_with_delays(policy: RetryPolicy, delays: Sequence[float]) -> RetryPolicy:
    """Copy ``policy`` with another delay schedule (tests use zero delays)."""
    return RetryPolicy(max_attempts=policy.max_attempts, delays=tuple(delays), retryable=policy.retryable)
