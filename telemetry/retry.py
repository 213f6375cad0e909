from __future__ import annotations

import random
import time
from typing import Callable, Iterable, Optional, Type, TypeVar

from telemetry.logging_utils import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


def _compute_backoff(attempt: int, base_delay: float, factor: float, jitter: float) -> float:
    delay = base_delay * (factor ** attempt)
    if jitter:
        delay += random.uniform(0, jitter)
    return delay


def retry_with_backoff(
    fn: Callable[[], T],
    *,
    retries: int = 3,
    base_delay: float = 0.25,
    factor: float = 2.0,
    jitter: float = 0.05,
    retry_exceptions: Iterable[Type[BaseException]] = (Exception,),
    operation: Optional[str] = None,
) -> T:
    """Call ``fn`` until it succeeds or ``retries`` attempts have failed.

    Only exceptions listed in ``retry_exceptions`` are retried; the last one
    propagates to the caller.
    """
    retry_on = tuple(retry_exceptions)
    for attempt in range(retries):
        try:
            return fn()
        except retry_on as exc:
            if attempt >= retries - 1:
                raise
            delay = _compute_backoff(attempt, base_delay, factor, jitter)
            logger.warning(
                "retrying_operation",
                extra={
                    "operation": operation or getattr(fn, "__name__", "call"),
                    "attempt": attempt + 1,
                    "delay_s": round(delay, 3),
                    "error": str(exc),
                },
            )
            time.sleep(delay)
    return fn()
