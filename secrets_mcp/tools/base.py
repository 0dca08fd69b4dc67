"""Failure boundary decorator shared by every tool handler."""

import functools
import logging
from typing import Any, Awaitable, Callable

from secrets_mcp.mcp.models import ToolCallResult
from secrets_mcp.mcp.registry import exception_message

logger = logging.getLogger(__name__)

AsyncResultFunc = Callable[..., Awaitable[ToolCallResult]]
Recovery = Callable[[str], ToolCallResult | None]


def guarded(
    failure_prefix: str,
    recover: Recovery | None = None,
) -> Callable[[AsyncResultFunc], AsyncResultFunc]:
    """
    Decorator that turns any exception raised by a handler into an error result.

    Usage:
        @guarded("Failed to store secret")
        async def store(self, args) -> ToolCallResult:
            ...

    A failure becomes ``ToolCallResult(isError=True)`` with the text
    ``"{failure_prefix}: {message}"``. ``recover`` gets the exception message
    first and may return a replacement result; returning None falls through
    to the error result.
    """
    def decorator(func: AsyncResultFunc) -> AsyncResultFunc:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> ToolCallResult:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                message = exception_message(e)
                if recover is not None:
                    recovered = recover(message)
                    if recovered is not None:
                        logger.info(f"{func.__name__} degraded: {message}")
                        return recovered
                logger.warning(f"{failure_prefix}: {message}")
                return ToolCallResult.error(f"{failure_prefix}: {message}")

        return wrapper

    return decorator
