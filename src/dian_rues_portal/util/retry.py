from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar


logger = logging.getLogger(__name__)
T = TypeVar("T")


def retry_until_nonempty(
    fetch: Callable[[], T],
    *,
    attempts: int,
    delay_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
    what: str = "value",
) -> Optional[T]:
    """
    Call `fetch` up to `attempts` times, sleeping `delay_seconds` between calls, until it returns
    something truthy. Returns the last (empty) result when attempts run out.

    Exceptions from `fetch` count as an empty attempt.
    """
    result: Optional[T] = None
    for attempt in range(1, max(1, attempts) + 1):
        try:
            result = fetch()
        except Exception:
            logger.debug("Fetching %s failed (attempt %d/%d).", what, attempt, attempts, exc_info=True)
            result = None
        if result:
            return result
        if attempt < attempts:
            logger.debug("%s not ready yet (attempt %d/%d); retrying in %.1fs", what, attempt, attempts, delay_seconds)
            sleep(delay_seconds)
    return result
