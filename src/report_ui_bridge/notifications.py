from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from loguru import logger

T = TypeVar("T")


async def best_effort(awaitable: Awaitable[T], *, timeout: float, label: str) -> T | None:
    """Await a UI notification, containing any failure or stall.

    Returns None when the notification timed out or raised.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"UI notification timed out after {timeout:.1f}s: {label}")
    except Exception as ex:
        logger.error(f"UI notification failed ({label}): {ex}")
    return None
