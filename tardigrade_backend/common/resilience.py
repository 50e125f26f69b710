"""
Retry strategies for calls into the storage network client.

The backend itself never retries; these decorators belong to the
client binding, which is where retry policy lives.
"""

import logging
from typing import Callable

from tenacity import (
    after_log,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from tardigrade_backend.storage.adapter import UnavailableError

logger = logging.getLogger(__name__)


def retry_transient_operation(func: Callable) -> Callable:
    """
    Retry decorator for idempotent client calls.

    Retries 3 times with exponential backoff, only on UnavailableError.
    Works for both coroutine functions and plain functions.
    """
    # Applied to func itself so tenacity picks its async retrier for coroutines
    return retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(UnavailableError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.DEBUG),
        reraise=True,
    )(func)
