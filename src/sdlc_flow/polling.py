"""Deadline-bounded polling.

Every wait in the flow goes through :func:`poll_until`::

    status = await poll_until(
        lambda: ci.job_status('hello-world'),
        interval=2.0,
        timeout=180.0,
        description='hello-world build',
    )

The loop never outlives its deadline by more than scheduling tolerance: each
probe call is bounded by the remaining budget and each sleep is capped at it.
Cancelling the surrounding task interrupts the sleep.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

from .errors import PollTimeout

logger = logging.getLogger(__name__)

T = TypeVar('T')


async def poll_until(
    probe: Callable[[], Awaitable[T]],
    *,
    interval: float,
    timeout: float,
    description: str = 'condition',
) -> T:
    """Await ``probe()`` until it returns a truthy value.

    Args:
        probe: Zero-argument coroutine function. Exceptions propagate.
        interval: Seconds to sleep between attempts.
        timeout: Total budget in seconds, measured with a monotonic clock.
        description: Human-readable subject used in logs and the timeout.

    Returns:
        The first truthy value returned by ``probe``.

    Raises:
        PollTimeout: If the budget elapses first.
    """
    if interval <= 0:
        raise ValueError('interval must be > 0')

    start = time.monotonic()
    deadline = start + max(timeout, 0.0)
    attempt = 0

    while True:
        attempt += 1
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break

        try:
            result = await asyncio.wait_for(probe(), timeout=remaining)
        except asyncio.TimeoutError:
            logger.debug('%s: attempt %d hit the deadline', description, attempt)
            break

        if result:
            logger.debug(
                '%s: satisfied on attempt %d after %.1fs',
                description, attempt, time.monotonic() - start,
            )
            return result

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        logger.debug('%s: not yet (attempt %d)', description, attempt)
        await asyncio.sleep(min(interval, remaining))

    raise PollTimeout(description, time.monotonic() - start)
