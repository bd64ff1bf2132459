from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Coroutine, Optional, ParamSpec, TypeVar, cast

from tenacity import (
    after_log,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from .exceptions import TransientError

P = ParamSpec("P")
T = TypeVar("T")


def retry_transient(
    max_attempts: int = 5,
    base_wait: float = 1.0,
    max_wait: float = 60.0,
    *,
    fixed_wait: Optional[float] = None,
) -> Callable[[Callable[P, Coroutine[Any, Any, T]]], Callable[P, Coroutine[Any, Any, T]]]:
    """
    Decorator for retrying transient errors.

    Args:
        max_attempts: Maximum number of attempts (default: 5)
        base_wait: Base wait time in seconds for exponential backoff (default: 1.0)
        max_wait: Maximum wait time in seconds between attempts (default: 60.0)
        fixed_wait: When set, wait exactly this long between attempts instead of
            backing off exponentially.

    Returns:
        A decorator that wraps async functions with retry logic. The last
        ``TransientError`` is re-raised once attempts are exhausted.
    """
    logger = logging.getLogger(__name__)
    wait = (
        wait_fixed(fixed_wait)
        if fixed_wait is not None
        else wait_exponential(multiplier=base_wait, max=max_wait, exp_base=2)
    )

    def decorator(
        func: Callable[P, Coroutine[Any, Any, T]],
    ) -> Callable[P, Coroutine[Any, Any, T]]:
        @wraps(func)
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait,
            retry=retry_if_exception_type(TransientError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            after=after_log(logger, logging.DEBUG),
            reraise=True,
        )
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return cast(T, await func(*args, **kwargs))

        return wrapper

    return decorator
