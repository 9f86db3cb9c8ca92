"""
Shared helpers for calls to the game service and payment gateway.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from arena.config import Config
from arena.utils.exceptions import ExternalServiceError
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar('T')


async def call_with_timeout(awaitable: Awaitable[T], service: str, operation: str,
                            timeout: Optional[float] = None) -> T:
    """
    Await an external call with an upper bound on its duration.

    Expiry is reported as ExternalServiceError so the enclosing atomic scope
    rolls back instead of holding its balance lock indefinitely.
    """
    timeout = timeout if timeout is not None else Config.EXTERNAL_CALL_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"{service} {operation} timed out after {timeout}s")
        raise ExternalServiceError(service, f"{operation} timed out after {timeout}s")
