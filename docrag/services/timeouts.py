"""Timeout bounds for calls to external providers."""

import asyncio
import logging
from typing import Awaitable, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: float,
    error_cls: Type[Exception],
    operation: str,
) -> T:
    """
    Await a provider call, converting a timeout into a provider error.

    Args:
        awaitable: The provider call.
        timeout: Maximum time to wait in seconds.
        error_cls: Exception raised when the call times out.
        operation: Short description used in logs and the error message.

    Returns:
        Result of the call.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.warning(f"{operation} timed out after {timeout:.1f}s")
        raise error_cls(f"{operation} timed out after {timeout:.1f}s") from e
