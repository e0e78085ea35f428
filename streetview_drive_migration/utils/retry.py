"""
Retry utility with exponential backoff for Google API calls.

Only transient failures are retried: HTTP 429 and 5xx responses from
``googleapiclient`` and connection errors from ``requests``. Anything else
propagates on the first attempt so the transfer loop can fail fast.
"""
import time
import logging
from typing import Callable, TypeVar, Optional, Tuple
from functools import wraps

import requests
from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)

T = TypeVar('T')

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


def is_transient(error: Exception) -> bool:
    """Return True for errors worth another attempt."""
    if isinstance(error, HttpError):
        return error.resp.status in RETRYABLE_STATUS
    if isinstance(error, requests.HTTPError) and error.response is not None:
        return error.response.status_code in RETRYABLE_STATUS
    return isinstance(error, (requests.ConnectionError, requests.Timeout))


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple = (HttpError, requests.RequestException),
    should_retry: Callable[[Exception], bool] = is_transient,
    on_retry: Optional[Callable[[Exception, int], None]] = None
) -> Callable:
    """
    Decorator that retries a function with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts.
                   Total attempts = max_retries + 1.
        initial_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for the delay between retries.
        exponential_base: Multiplier applied to the delay after each retry.
        exceptions: Exception types that are candidates for a retry.
        should_retry: Predicate deciding whether a caught exception is transient.
        on_retry: Optional callback(exception, attempt_number) called on each retry.
                If None, a warning is logged.

    Returns:
        Decorated function with the same signature as the original.

    Raises:
        The last exception raised once retries are exhausted, or the first
        non-transient exception.

    Example:
        >>> @retry_with_backoff(max_retries=3, initial_delay=1.0)
        ... def list_page(service, token):
        ...     return service.photos().list(pageToken=token).execute()
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries or not should_retry(e):
                        if attempt > 0:
                            logger.error(
                                f"{func.__name__} failed after {attempt + 1} attempts: {e}"
                            )
                        raise

                    if on_retry:
                        on_retry(e, attempt + 1)
                    else:
                        logger.warning(
                            f"{func.__name__} failed (attempt {attempt + 1}/{max_retries + 1}): {e}. "
                            f"Retrying in {delay:.1f} seconds..."
                        )

                    time.sleep(delay)
                    delay = min(delay * exponential_base, max_delay)

        return wrapper
    return decorator
