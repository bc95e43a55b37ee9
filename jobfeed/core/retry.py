"""Generic retry-with-backoff combinator for async external calls."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from jobfeed.core.exceptions import RetryError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay_ms(attempt: int, base_ms: int = 1000, max_ms: int = 10000) -> int:
    """Exponential backoff: ``min(base_ms * 2**attempt, max_ms)``.

    ``attempt`` starts at 1, so the default sequence is 2000, 4000, 8000,
    10000, 10000, ...
    """
    return min(base_ms * 2**attempt, max_ms)


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    retries: int = 3,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    delay_ms: Callable[[int], int] = backoff_delay_ms,
    sleep: Callable[[float], Awaitable[object]] | None = None,
    label: str = "call",
) -> T:
    """Call ``func`` until it succeeds, at most ``retries + 1`` times.

    Between failed attempts waits ``delay_ms(attempt)`` milliseconds.
    Exceptions outside ``retry_on`` propagate immediately.

    Raises:
        RetryError: every attempt raised one of ``retry_on``. The last
            exception is chained as ``__cause__``.
    """
    total = retries + 1

    def log_retry(state: RetryCallState) -> None:
        delay = state.next_action.sleep if state.next_action else 0.0
        logger.warning(
            "%s failed (attempt %d/%d): %s; retrying in %d ms",
            label, state.attempt_number, total,
            state.outcome.exception() if state.outcome else None, delay * 1000,
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(total),
        wait=lambda state: delay_ms(state.attempt_number) / 1000,
        retry=retry_if_exception_type(retry_on),
        sleep=sleep or asyncio.sleep,
        before_sleep=log_retry,
        reraise=True,
    )
    try:
        return await retrying(func)
    except retry_on as e:
        msg = f"{label} failed after {total} attempts: {e}"
        raise RetryError(msg, attempts=total) from e
