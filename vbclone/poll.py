"""Bounded retry-until-true polling used for readiness checks."""

from __future__ import annotations

import time
from typing import Callable

from loguru import logger

log = logger


def poll_until(
    predicate: Callable[[], bool],
    *,
    attempts: int,
    delay: float,
    sleep: Callable[[float], None] = time.sleep,
    what: str = 'condition',
) -> bool:
    """
    Call ``predicate`` until it returns True or ``attempts`` are used up.

    The delay is slept between attempts only, never after the final one.
    A falsy predicate result means "not ready yet" and is never an error.

    Example:
        >>> from vbclone.poll import poll_until
        >>> seen = []
        >>> poll_until(lambda: seen.append(1) or len(seen) == 3,
        ...            attempts=5, delay=0, sleep=lambda s: None)
        True
        >>> len(seen)
        3
        >>> poll_until(lambda: False, attempts=2, delay=0, sleep=lambda s: None)
        False
    """
    for attempt in range(1, attempts + 1):
        if predicate():
            log.debug('{} ready after {} attempt(s)', what, attempt)
            return True
        if attempt < attempts:
            sleep(delay)
    log.debug('{} not ready after {} attempt(s)', what, attempts)
    return False
