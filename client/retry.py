"""
Bounded retry for idempotent operations.
"""

import logging
import time
from typing import Callable, Optional, TypeVar


T = TypeVar("T")

logger = logging.getLogger(__name__)


def retry_call(
    func: Callable[[], T],
    attempts: int = 3,
    delay: float = 1.0,
    retryable: Optional[Callable[[Exception], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "operation"
) -> T:
    """
    Call func until it succeeds or attempts run out.

    Waits a fixed delay between attempts. A failure the retryable predicate
    rejects, or the failure of the last attempt, propagates unchanged.

    Args:
        func: Zero-argument callable to invoke
        attempts: Total number of attempts, at least 1
        delay: Seconds to wait between attempts
        retryable: Predicate selecting failures worth retrying (default: all)
        sleep: Sleep function, replaceable in tests
        description: Name used in log messages

    Returns:
        The first successful result
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(1, attempts + 1):
        try:
            return func()
        except Exception as e:
            if retryable is not None and not retryable(e):
                raise
            if attempt == attempts:
                logger.debug(f"{description} failed after {attempts} attempts")
                raise
            logger.warning(f"{description} failed (attempt {attempt}/{attempts}): {e}")
            sleep(delay)
