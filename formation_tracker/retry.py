"""Tenacity retry policy for the language-model calls."""

from __future__ import annotations

from collections.abc import Callable

from tenacity import (
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import RetryConfig


def with_retry(
    config: RetryConfig,
    *,
    retryable_exceptions: tuple[type[BaseException], ...] = (Exception,),
    retry_when: Callable[[BaseException], bool] | None = None,
) -> Callable:
    """Return a tenacity retry decorator configured from *config*.

    Exceptions are retried when they are instances of
    *retryable_exceptions* or, if given, when *retry_when* accepts them.
    The last exception is re-raised once attempts are exhausted.

    Usage::

        @with_retry(config.retry, retry_when=is_transient)
        async def complete(prompt: str) -> str: ...
    """
    condition = (
        retry_if_exception(retry_when)
        if retry_when is not None
        else retry_if_exception_type(retryable_exceptions)
    )
    return retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.multiplier,
            min=config.initial_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=condition,
        reraise=True,
    )
