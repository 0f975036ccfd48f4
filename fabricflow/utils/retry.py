from __future__ import annotations

import logging
import time
from typing import Callable, Tuple, Type, TypeVar

from django.conf import settings
from django.db import InterfaceError, OperationalError

from fabricflow.exceptions import NetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    OperationalError,
    InterfaceError,
    NetworkError,
)


def with_retry(
    operation: Callable[[], T],
    max_attempts: int | None = None,
    base_delay: float | None = None,
    retry_on: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds or ``max_attempts`` is reached.

    The delay doubles after every failed attempt (1s, 2s, 4s with the
    defaults). Only ``retry_on`` exceptions are retried; anything else
    propagates immediately. After the last attempt the last error is re-raised.
    """
    if max_attempts is None:
        max_attempts = getattr(settings, "FABRICFLOW_RETRY_ATTEMPTS", 3)
    if base_delay is None:
        base_delay = getattr(settings, "FABRICFLOW_RETRY_BASE_DELAY", 1.0)
    max_attempts = max(1, int(max_attempts))

    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except retry_on as exc:
            logger.warning("%s attempt %s/%s failed: %s", label, attempt, max_attempts, exc)
            if attempt == max_attempts:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            if delay > 0:
                sleep(delay)
    raise AssertionError("unreachable")
