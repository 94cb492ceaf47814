"""Bounded poll-with-timeout primitive."""

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


def wait_until(
    predicate: Callable[[], object],
    timeout: float,
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """
    Poll a predicate until it is truthy or the timeout elapses.

    The predicate is checked once immediately, then every ``interval``
    seconds. Exceptions raised by the predicate count as "not yet".

    Args:
        predicate: Zero-argument callable to poll
        timeout: Maximum elapsed seconds
        interval: Seconds between checks
        sleep: Sleep function (injectable for tests)
        clock: Monotonic clock (injectable for tests)

    Returns:
        True if the predicate succeeded within the timeout, False otherwise
    """
    if interval <= 0:
        raise ValueError("interval must be positive")

    deadline = clock() + max(0.0, timeout)
    while True:
        try:
            if predicate():
                return True
        except Exception as e:
            logger.debug(f"Poll predicate raised: {e}")

        remaining = deadline - clock()
        if remaining <= 0:
            return False
        sleep(min(interval, remaining))
