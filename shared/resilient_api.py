"""
Resilient API calls with retry logic and error classification.

Retries are only for idempotent reads against the Google Calendar API
(events.list / events.get). Writes (insert/update/delete) must not go
through here: a retried insert can create a duplicate appointment.
"""

import logging
import socket
from typing import Awaitable, Callable, ParamSpec, TypeVar

from googleapiclient.errors import HttpError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

P = ParamSpec('P')
T = TypeVar('T')

RETRYABLE_HTTP_STATUSES = (429, 500, 502, 503, 504)


def is_retryable_error(error: BaseException) -> bool:
    """
    Determine if an error is retryable.

    Args:
        error: Exception to check

    Returns:
        bool: True if error is retryable, False otherwise

    Retryable errors:
    - Google Calendar API: 429 (rate limit), 500, 502, 503, 504
    - Network errors, timeouts
    """
    if isinstance(error, HttpError):
        return error.resp.status in RETRYABLE_HTTP_STATUSES

    if isinstance(error, (ConnectionError, TimeoutError, socket.timeout)):
        return True

    # httplib2 raises plain OSError subclasses for DNS/socket failures
    if isinstance(error, OSError):
        return True

    return False


def _before_sleep_logger(name: str) -> Callable[[RetryCallState], None]:
    def log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Function {name} failed (attempt {retry_state.attempt_number}), "
            f"retrying in {delay:.2f}s: {exc}"
        )

    return log_retry


async def call_with_retry(
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0,
    **kwargs: P.kwargs
) -> T:
    """
    Await an async function with exponential backoff retry logic.

    Args:
        func: Async function to call
        *args: Positional arguments to pass to func
        max_retries: Maximum number of retry attempts (default: 3)
        initial_delay: Initial delay between retries in seconds (default: 1.0)
        max_delay: Maximum delay between retries in seconds (default: 10.0)
        **kwargs: Keyword arguments to pass to func

    Returns:
        Result from successful function call

    Raises:
        Exception: the last exception once retries are exhausted, or the
        first non-retryable one
    """
    name = getattr(func, "__name__", repr(func))
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=initial_delay, max=max_delay),
        retry=retry_if_exception(is_retryable_error),
        before_sleep=_before_sleep_logger(name),
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            result = await func(*args, **kwargs)
            if attempt.retry_state.attempt_number > 1:
                logger.info(
                    f"Function {name} succeeded on attempt "
                    f"{attempt.retry_state.attempt_number}"
                )

    return result
