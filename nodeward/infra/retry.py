"""Retry decorator for async calls, built on tenacity.

Example:
    from nodeward.infra.retry import retry, on_status_code

    @retry(on=on_status_code(429, 503), max_attempts=3)
    async def create_droplet(...):
        ...

    # Or wrap at call time when the limits come from configuration
    await retry(max_attempts=settings.attempts)(store.delete)(project_id)
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

type RetryPredicate = Callable[[BaseException], bool]


def _as_predicate(on: type[Exception] | tuple[type[Exception], ...] | RetryPredicate) -> RetryPredicate:
    if isinstance(on, type | tuple):
        return lambda e: isinstance(e, on)
    return on


def retry[**P, T](
    on: type[Exception] | tuple[type[Exception], ...] | RetryPredicate = Exception,
    max_attempts: int = 5,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    jitter: bool = True,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry an async function with exponential backoff.

    Args:
        on: Exception class, tuple of classes, or predicate deciding whether
            a failure is retried.
        max_attempts: Maximum number of attempts, the first one included.
        base_delay: Delay in seconds before the first retry, doubled each time.
        max_delay: Upper bound for a single delay.
        jitter: Add up to 10% random jitter to each delay.

    The last exception is re-raised unchanged once attempts run out.
    """
    wait = wait_exponential(multiplier=base_delay, max=max_delay)
    if jitter:
        wait = wait + wait_random(0, base_delay * 0.1)

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        name = getattr(func, "__qualname__", repr(func))

        def log_retry(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            delay = state.next_action.sleep if state.next_action else 0.0
            logger.bind(component="retry").warning(
                "{name}: attempt {attempt}/{total} failed with {error}: {message}. Waiting {delay:.1f}s...",
                name=name, attempt=state.attempt_number, total=max_attempts,
                error=type(exc).__name__, message=str(exc), delay=delay,
            )

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            retrying = AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait,
                retry=retry_if_exception(_as_predicate(on)),
                before_sleep=log_retry,
                reraise=True,
            )
            return await retrying(func, *args, **kwargs)

        return wrapper

    return decorator


def on_status_code(*codes: int) -> RetryPredicate:
    """Retry when the exception carries one of ``codes`` in its ``status`` attribute."""

    def predicate(e: BaseException) -> bool:
        return getattr(e, "status", None) in codes

    return predicate
