"""
Bounded retry with exponential backoff for remote calls.
"""

import time
import logging
from typing import Callable, TypeVar

from b2backup.exceptions import NetworkError


logger = logging.getLogger(__name__)

T = TypeVar('T')


def call_with_retries(
    func: Callable[[], T],
    attempts: int = 3,
    backoff: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    description: str = 'remote call'
) -> T:
    """
    Call func, retrying retryable network failures.

    Args:
        func: Zero-argument callable performing one attempt
        attempts: Maximum number of attempts (1 disables retrying)
        backoff: Seconds to wait after the first failure, doubled after each
            further failure
        sleep: Sleep function, replaceable in tests
        description: Label used in log messages

    Returns:
        Whatever func returns

    Raises:
        NetworkError: The last failure, once attempts are exhausted or the
            failure is not retryable
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except NetworkError as e:
            if not e.retryable or attempt == attempts:
                raise
            delay = backoff * (2 ** (attempt - 1))
            logger.warning(
                f"{description} failed (attempt {attempt}/{attempts}): {e}; "
                f"retrying in {delay:.1f}s"
            )
            sleep(delay)

    raise ValueError("attempts must be at least 1")
