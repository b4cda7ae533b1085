"""Bounded exponential retry with jitter."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffResult(Generic[T]):
    """Outcome of a backoff run.

    Attributes:
        succeeded: True if a result was accepted.
        attempts: Number of times the task ran.
        result: The accepted result, or the last result on exhaustion.
    """

    succeeded: bool
    attempts: int
    result: T | None


def seconds(value: float | timedelta) -> float:
    """Convert a delay given as seconds or a timedelta into seconds."""
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def compute_delay(
    attempt: int,
    max_delay: float | timedelta,
    base: float = 1.0,
    jitter: Callable[[], float] = random.random,
) -> float:
    """Delay before retrying after the given (1-based) attempt.

    ``min(base * 2 ** (attempt - 1) + jitter, max_delay)`` with jitter drawn
    uniformly from ``[0, 1)`` seconds.
    """
    return min(base * 2 ** (attempt - 1) + jitter(), seconds(max_delay))


async def backoff(
    task: Callable[[], Awaitable[T | None]],
    accept: Callable[[T], bool],
    max_attempts: int = 10,
    max_delay: float | timedelta = 64.0,
    *,
    base: float = 1.0,
    description: str = "request",
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> BackoffResult[T]:
    """Run ``task`` until ``accept`` approves its result or attempts run out.

    A ``None`` result is never accepted; tasks return it to signal a
    transient failure they already absorbed. Exhaustion is logged and
    returned, never raised: the caller decides whether it matters.
    ``max_attempts <= 0`` runs the task exactly once.

    Args:
        task: Coroutine factory performing one attempt.
        accept: Predicate deciding whether a result ends the retries.
        max_attempts: Maximum number of attempts.
        max_delay: Upper bound for any single delay.
        base: Delay unit for the exponential term, in seconds.
        description: What is being attempted, for the warnings.
        sleep: Awaitable sleep, replaceable in tests.

    Returns:
        BackoffResult describing the accepted or last result.
    """
    total = max(max_attempts, 1)
    result: T | None = None
    for attempt in range(1, total + 1):
        result = await task()
        if result is not None and accept(result):
            return BackoffResult(succeeded=True, attempts=attempt, result=result)
        if attempt < total:
            delay = compute_delay(attempt, max_delay, base)
            logger.warning(
                "Unable to complete %s: retrying (%d/%d) in %.3fs",
                description,
                attempt,
                total,
                delay,
            )
            await sleep(delay)
        else:
            logger.warning(
                "Unable to complete %s: stopping (%d/%d)", description, attempt, total
            )
    return BackoffResult(succeeded=False, attempts=total, result=result)
