"""
Retry logic with backoff for handling transient failures.

Used for fetching the menu page and for every Bot API call, which may fail
due to network issues, rate limiting, or temporary errors.
"""

import time
import functools
from typing import Callable, Type, Tuple, Optional


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""
    pass


def retry_call(
    func: Callable,
    *args,
    max_retries: Optional[int] = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
    on_give_up: Optional[Callable] = None,
    **kwargs,
):
    """
    Call ``func(*args, **kwargs)``, retrying on failure.

    Args:
        func: Callable to run
        max_retries: Maximum number of retry attempts (0 = no retries,
            None = retry until it succeeds)
        base_delay: Initial delay in seconds (0 = retry immediately)
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential calculation (1.0 = constant delay)
        exceptions: Tuple of exceptions to catch and retry
        on_retry: Optional callback function(attempt, exception, delay)
        on_give_up: Optional callback function(attempts, exception)

    Raises:
        RetryError: When every attempt failed; chained to the last failure
    """
    delay = base_delay
    attempt = 0
    while True:
        try:
            return func(*args, **kwargs)
        except exceptions as e:
            attempt += 1
            if max_retries is not None and attempt > max_retries:
                if on_give_up:
                    on_give_up(attempt, e)
                raise RetryError(f"Failed after {attempt} attempts: {e}") from e

            current_delay = min(delay, max_delay)
            if on_retry:
                on_retry(attempt, e, current_delay)
            if current_delay > 0:
                time.sleep(current_delay)
            delay *= exponential_base


def exponential_backoff(
    max_retries: Optional[int] = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Decorator for retrying functions with exponential backoff.

    Takes the same options as ``retry_call``.

    Example:
        @exponential_backoff(max_retries=3, base_delay=1.0)
        def fetch_data(url):
            return requests.get(url)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            return retry_call(
                func,
                *args,
                max_retries=max_retries,
                base_delay=base_delay,
                max_delay=max_delay,
                exponential_base=exponential_base,
                exceptions=exceptions,
                on_retry=on_retry,
                **kwargs,
            )

        return wrapper
    return decorator
