"""
Retry logic for calls to the rate-limited analysis service.

Failures are classified as rate limited (worth waiting out and retrying)
or terminal. Backoff waits are interruptible through a ``threading.Event``
so a stopped job does not sit out a full backoff period.
"""

import threading
import time
from typing import Callable, Optional, TypeVar

T = TypeVar("T")

RATE_LIMIT_MARKERS = ("429", "quota", "resource_exhausted", "rate limit", "too many requests")


class AnalysisError(Exception):
    """Terminal failure from the analysis service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(AnalysisError):
    """The analysis service asked the caller to back off."""
    pass


class RetryCancelled(Exception):
    """Raised when the cancel event fires while waiting to retry."""

    def __init__(self, last_error: Exception):
        super().__init__(f"Retry cancelled after: {last_error}")
        self.last_error = last_error


def is_rate_limited(exception: Exception) -> bool:
    """
    Determine if an exception means the service is throttling us.

    Args:
        exception: Exception to check

    Returns:
        True for RateLimitedError or an error message carrying a quota marker
    """
    if isinstance(exception, RateLimitedError):
        return True
    return is_rate_limit_message(str(exception))


def is_rate_limit_message(text: str) -> bool:
    """Check a response body or error message for quota markers."""
    text = text.lower()
    return any(marker in text for marker in RATE_LIMIT_MARKERS)


def should_retry_http_status(status_code: int) -> bool:
    """
    Check if HTTP status code indicates the request should be retried later.

    Only throttling is retried; server errors from the proxy are treated
    as terminal for the item.
    """
    return status_code == 429


def retry_rate_limited(
    func: Callable[[], T],
    max_retries: int = 3,
    backoff: float = 60.0,
    cancel_event: Optional[threading.Event] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> T:
    """
    Call ``func`` and retry it while it fails with a rate-limit error.

    Args:
        func: Zero-argument callable to invoke
        max_retries: Retries after the first attempt (0 = no retries)
        backoff: Fixed delay in seconds between attempts
        cancel_event: Event that aborts a pending backoff when set
        on_retry: Optional callback function(attempt, exception, delay)

    Returns:
        The first successful result

    Raises:
        RetryCancelled: If cancel_event is set during a backoff
        Exception: The last error once retries are exhausted, or the first
            error that is not rate limited
    """
    for attempt in range(max_retries + 1):
        try:
            return func()
        except Exception as e:
            # Don't sleep after the last attempt
            if not is_rate_limited(e) or attempt >= max_retries:
                raise

            if on_retry:
                on_retry(attempt + 1, e, backoff)

            if cancel_event is not None:
                if cancel_event.wait(backoff):
                    raise RetryCancelled(e) from e
            elif backoff > 0:
                time.sleep(backoff)

    # Only reachable with a negative max_retries
    raise ValueError(f"max_retries must be >= 0, got {max_retries}")
