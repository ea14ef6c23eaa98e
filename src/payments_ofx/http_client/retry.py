"""
Bounded retry along a fixed delay schedule.
"""

import logging
import time
from collections.abc import Callable, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Rate-limit backoff, factor 4: 15 s, 1 min, 4 min.
RATE_LIMIT_SCHEDULE: tuple[float, ...] = (15.0, 60.0, 240.0)


def retry_with_schedule(
    operation: Callable[[], T],
    schedule: Sequence[float],
    should_retry: Callable[[T], bool],
    sleep: Callable[[float], None] = time.sleep,
    on_exhausted: Callable[[T], Exception] | None = None,
) -> T:
    """
    Run operation, re-running it after each delay in schedule while
    should_retry(result) holds.

    The operation runs at most len(schedule) + 1 times. If the last result
    still needs a retry, on_exhausted(result) is raised; without it the last
    result is returned as-is.
    """
    result = operation()
    for attempt, delay in enumerate(schedule, start=1):
        if not should_retry(result):
            return result
        logger.warning(
            "Retry attempt #%d of %d in %s s", attempt, len(schedule), f"{delay:g}"
        )
        sleep(delay)
        result = operation()

    if should_retry(result) and on_exhausted is not None:
        raise on_exhausted(result)
    return result
