"""
Performance instrumentation utilities for Azure Flow Log Investigator.
"""

import logging
import time
from functools import wraps
from typing import Any, Callable

logger = logging.getLogger(__name__)


def timed(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator to log function execution time at debug level."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        start_time = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed = time.perf_counter() - start_time
            logger.debug(f"[PERF] {func.__qualname__} took {elapsed:.3f} seconds")

    return wrapper
