"""Performance Logging.

Timing helpers for remote lookups and filter commits. Every call is
logged at DEBUG; calls above the slow threshold are logged at WARNING.
"""

import inspect
import functools
import logging
import time
from typing import Any, Callable, Optional

from src.logging_config.config import DEFAULT_LOGGING_CONFIG

logger = logging.getLogger(__name__)


def _report(
    _logger: logging.Logger,
    name: str,
    duration_ms: float,
    threshold_ms: float,
    error: Optional[BaseException] = None,
) -> None:
    extra = {"duration_ms": round(duration_ms, 2)}
    if error is not None:
        _logger.error(
            "%s failed after %.1fms: %s", name, duration_ms, type(error).__name__,
            extra=extra,
        )
    elif duration_ms >= threshold_ms:
        _logger.warning("Slow operation: %s took %.1fms", name, duration_ms, extra=extra)
    else:
        _logger.debug("%s completed in %.1fms", name, duration_ms, extra=extra)


def log_performance(
    threshold_ms: Optional[float] = None,
    logger_name: Optional[str] = None,
) -> Callable:
    """Decorator that logs sync or async function execution time.

    Example:
        @log_performance(threshold_ms=250)
        async def fetch(self, query, kind):
            ...
    """
    if threshold_ms is None:
        threshold_ms = DEFAULT_LOGGING_CONFIG.slow_threshold_ms

    def decorator(func: Callable) -> Callable:
        _logger = logging.getLogger(logger_name or func.__module__)
        name = func.__qualname__

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as exc:
                    _report(_logger, name, (time.perf_counter() - start) * 1000, threshold_ms, exc)
                    raise
                _report(_logger, name, (time.perf_counter() - start) * 1000, threshold_ms)
                return result
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                _report(_logger, name, (time.perf_counter() - start) * 1000, threshold_ms, exc)
                raise
            _report(_logger, name, (time.perf_counter() - start) * 1000, threshold_ms)
            return result
        return sync_wrapper

    return decorator


class PerformanceTimer:
    """Context manager for timing code blocks.

    Example:
        with PerformanceTimer("filters.apply") as timer:
            await committer(filters)
        print(f"Commit took {timer.duration_ms:.1f}ms")
    """

    def __init__(self, operation_name: str, threshold_ms: Optional[float] = None):
        self.operation_name = operation_name
        self.threshold_ms = threshold_ms or DEFAULT_LOGGING_CONFIG.slow_threshold_ms
        self.start_time: float = 0
        self.duration_ms: float = 0

    def __enter__(self) -> "PerformanceTimer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        _report(logger, self.operation_name, self.duration_ms, self.threshold_ms, exc_val)
