"""Retry logic for establishing device sessions.

Only opening the transport is retried. Commands, staging and commits are
sent exactly once; a failed RPC is reported, never replayed.
"""
import asyncio
import logging
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    wait_incrementing,
    retry_if_exception_type,
    retry_if_not_exception_type,
    before_sleep_log,
)
from tenacity.wait import wait_base

from ..devices.base import DeviceTransport, SystemInformation
from ..errors import CredentialsError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Common network exceptions to retry on (SessionOpenError is a ConnectionError)
RETRYABLE_EXCEPTIONS = (
    ConnectionError,
    TimeoutError,
    OSError,
    EOFError,
)


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
    wait: Optional[wait_base] = None,
    no_retry: tuple = (),
) -> Callable:
    """Decorator factory for retry logic.

    Args:
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time between retries (seconds)
        max_wait: Maximum wait time between retries (seconds)
        exceptions: Tuple of exception types to retry on
        wait: tenacity wait strategy, exponential backoff when omitted
        no_retry: Subclasses of ``exceptions`` that fail immediately
    """
    strategy = wait or wait_exponential(multiplier=1, min=min_wait, max=max_wait)
    retry_on = retry_if_exception_type(exceptions)
    if no_retry:
        retry_on = retry_on & retry_if_not_exception_type(no_retry)

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=strategy,
            retry=retry_on,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            return await func(*args, **kwargs)  # type: ignore[misc]

        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=strategy,
            retry=retry_on,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> T:
            return func(*args, **kwargs)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper  # type: ignore[return-value]
        return sync_wrapper

    return decorator


async def open_with_retry(transport: DeviceTransport, wait: Optional[wait_base] = None) -> SystemInformation:
    """Connect a transport, retrying with a linearly increasing pause (1s, 2s, ...).

    The number of attempts comes from the device's ``retries`` setting,
    bounded to 1..10. Credential failures are not retried. The last error is
    re-raised unchanged.
    """
    attempts = transport.config.retry_attempts

    @with_retry(
        max_attempts=attempts,
        wait=wait or wait_incrementing(start=1, increment=1),
        no_retry=(CredentialsError,),
    )
    async def _open() -> SystemInformation:
        return await transport.connect()

    return await _open()
