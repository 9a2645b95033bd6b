"""Retry logic with exponential backoff for Dynamics service protection limits.

The Dynamics Web API answers with HTTP 429 when a client exceeds the service
protection limits. This module retries such calls with exponential backoff
(1s, 2s, 4s), honouring a Retry-After header when the server sends one, and
fails fast for every other error.
"""

import time
import logging
from typing import Callable, Optional, TypeVar

from .errors import APIAccessError

logger = logging.getLogger(__name__)

T = TypeVar('T')

MAX_RETRIES = 3

# Upper bound for a server-provided Retry-After value
MAX_RETRY_AFTER = 60


def retry_on_rate_limit(func: Callable[..., T], *args, **kwargs) -> T:
    """Retry function on 429 responses with exponential backoff.

    Args:
        func: The function to execute with retry logic
        *args: Positional arguments to pass to the function
        **kwargs: Keyword arguments to pass to the function

    Returns:
        The return value of the function

    Raises:
        APIAccessError: If the rate limit persists after 3 retries
        Other exceptions: Passed through immediately without retry

    Example:
        >>> records = retry_on_rate_limit(session.get, url)
    """
    for retry_num in range(MAX_RETRIES + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not _is_rate_limit_error(e):
                raise

            if retry_num >= MAX_RETRIES:
                logger.error(
                    f"Rate limit persisted after {MAX_RETRIES} retries, giving up"
                )
                raise APIAccessError(f"Dynamics API failure (after {MAX_RETRIES} retries)")

            wait_time = _retry_after(e)
            if wait_time is None:
                wait_time = 2 ** retry_num
            logger.info(
                f"Rate limit hit, retrying in {wait_time}s "
                f"(retry {retry_num + 1}/{MAX_RETRIES})"
            )
            time.sleep(wait_time)

    raise APIAccessError(f"Dynamics API failure (after {MAX_RETRIES} retries)")


def _is_rate_limit_error(exception: Exception) -> bool:
    """Check if an exception represents a 429 response.

    Args:
        exception: The exception to check

    Returns:
        True if this appears to be a rate limit error, False otherwise
    """
    if getattr(exception, 'status_code', None) == 429:
        return True

    response = getattr(exception, 'response', None)
    if response is not None and getattr(response, 'status_code', None) == 429:
        return True

    error_msg = str(exception).lower()
    return any(pattern in error_msg for pattern in ('429', 'too many requests'))


def _retry_after(exception: Exception) -> Optional[int]:
    """Read the Retry-After header (seconds) from a 429 response, if present."""
    response = getattr(exception, 'response', None)
    headers = getattr(response, 'headers', None)
    if not headers:
        return None

    value = headers.get('Retry-After')
    if value is None:
        return None

    try:
        seconds = int(float(value))
    except (TypeError, ValueError):
        return None

    return max(0, min(seconds, MAX_RETRY_AFTER))
