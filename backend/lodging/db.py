"""Motor client lifecycle for the reservation store.

One client per process. Server selection and connect are bounded by the
conflict-check timeout, so an unreachable server fails inside the window
callers already wait for instead of hanging on the driver's 30s default.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from lodging import config

logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None


def client_options() -> Dict[str, Any]:
    timeout_ms = int(config.CONFLICT_CHECK_TIMEOUT_SECONDS * 1000)
    return {
        "tz_aware": True,
        "serverSelectionTimeoutMS": timeout_ms,
        "connectTimeoutMS": timeout_ms,
        "appname": config.APP_NAME,
    }


async def connect_mongo() -> AsyncIOMotorDatabase:
    global _client

    if _client is None:
        _client = AsyncIOMotorClient(config.MONGO_URL, **client_options())
        logger.info("mongo client created for database %s", config.DB_NAME)
    return _client[config.DB_NAME]


async def close_mongo() -> None:
    global _client

    if _client is not None:
        _client.close()
        logger.info("mongo client closed")
    _client = None


async def get_db() -> AsyncIOMotorDatabase:
    """Handle on the configured database, connecting on first use."""
    return await connect_mongo()
