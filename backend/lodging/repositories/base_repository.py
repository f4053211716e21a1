from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from lodging.errors import DataAccessError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_collection(db: AsyncIOMotorDatabase, name: str) -> AsyncIOMotorCollection:
    """Return a Motor collection from the given database.

    This is the only place where repositories should obtain collections.
    """

    return db[name]


async def guarded(operation: str, awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
    """Await a driver call, turning driver failures and timeouts into DataAccessError."""

    try:
        if timeout is not None:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        return await awaitable
    except asyncio.TimeoutError as exc:
        logger.warning("data store timeout during %s after %ss", operation, timeout)
        raise DataAccessError(
            f"Data store did not answer in time ({operation})",
            {"operation": operation, "timeout_seconds": timeout},
        ) from exc
    except PyMongoError as exc:
        logger.exception("data store failure during %s", operation)
        raise DataAccessError(
            f"Data store failure ({operation})",
            {"operation": operation, "reason": str(exc)},
        ) from exc
