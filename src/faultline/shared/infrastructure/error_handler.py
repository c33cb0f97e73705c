"""Centralized error boundary decorator for the capture and report pipeline."""

import functools
import inspect
from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


def error_boundary(
    event: str | None = None,
    fallback_value: Any = None,
    log_level: str = "error",
    error_map: dict[type[Exception], type[Exception]] | None = None,
    context_keys: list[str] | None = None,
):
    """
    Absorb failures of the decorated function.

    Nothing below the report pipeline or the uncaught-error hook is allowed
    to escape into the host application. Wrapped functions log the failure
    and return a fallback instead of raising. Works for plain and async
    functions alike.

    Args:
        event: Log event name. Defaults to ``<qualname>_failed``.
        fallback_value: Returned on error. Can be a callable that returns the
            fallback value.
        log_level: structlog level for error logging ("error", "warning", "info", "debug")
        error_map: Transform exceptions {SourceType: TargetType} before logging
        context_keys: Extract these from kwargs for log context

    Example:
        ```python
        @error_boundary(
            event="report_delivery_failed",
            log_level="warning",
            error_map={httpx.HTTPError: TransportFailure},
        )
        async def deliver(url, body):
            ...
        ```

    Returns:
        Decorated function with centralized error handling
    """

    def decorator(fn: Callable) -> Callable:
        event_name = event or f"{fn.__qualname__}_failed"

        def recover(e: Exception, kwargs: dict) -> Any:
            mapped = e
            if error_map:
                for source, target in error_map.items():
                    if isinstance(e, source):
                        mapped = target(str(e))
                        break

            log_ctx = {}
            if context_keys:
                for key in context_keys:
                    if key in kwargs:
                        log_ctx[key] = kwargs[key]

            log_method = getattr(logger, log_level, logger.error)
            log_method(
                event_name,
                error=str(mapped),
                error_type=type(mapped).__name__,
                original_type=type(e).__name__,
                **log_ctx,
            )

            if callable(fallback_value):
                try:
                    return fallback_value()
                except Exception as fallback_err:
                    logger.error(
                        f"{event_name}_fallback_failed",
                        original_error=str(mapped),
                        fallback_error=str(fallback_err),
                    )
                    return None
            return fallback_value

        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await fn(*args, **kwargs)
                except Exception as e:
                    return recover(e, kwargs)

            return async_wrapper

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                return recover(e, kwargs)

        return wrapper

    return decorator
