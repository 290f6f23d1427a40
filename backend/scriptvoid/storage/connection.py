"""
MongoDB connection management.

This module provides:
- Motor client construction from settings
- An async context manager yielding a ``MongoStore``
- Health check and index utilities
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from scriptvoid.config import MongoConfig, Settings
from scriptvoid.storage.collections import MongoStore

logger = logging.getLogger(__name__)


def create_client(mongo: MongoConfig) -> AsyncIOMotorClient:
    # tz_aware so expiry comparisons never mix naive and aware datetimes
    return AsyncIOMotorClient(
        mongo.url,
        tz_aware=True,
        serverSelectionTimeoutMS=mongo.server_selection_timeout_ms,
    )


@asynccontextmanager
async def open_store(settings: Settings) -> AsyncIterator[MongoStore]:
    """
    Open a client for the duration of the block.

    Usage:
        async with open_store(settings) as store:
            result = await job.run(store)
    """
    client = create_client(settings.mongo)
    logger.debug(f"Opened MongoDB client for {sanitize_mongodb_url(settings.mongo.url)}")
    try:
        yield MongoStore(client, settings.mongo)
    finally:
        client.close()


async def check_db_connection(client: AsyncIOMotorClient) -> bool:
    """
    Check if MongoDB connection is healthy.
    """
    try:
        await client.admin.command("ping")
        return True
    except PyMongoError:
        return False


async def ensure_indexes(store: MongoStore) -> None:
    """Create the indexes the job filters and the leaderboard read path rely on."""
    mongo = store.mongo
    scripts_db = store.client[mongo.scripts_database]
    users_db = store.client[mongo.users_database]

    await users_db[mongo.leaderboard_collection].create_index([("position", ASCENDING)])
    await users_db[mongo.leaderboard_collection].create_index(
        [("username", ASCENDING)], unique=True
    )
    await users_db[mongo.online_collection].create_index([("lastPing", ASCENDING)])
    await users_db[mongo.users_collection].create_index([("isTimeouted", ASCENDING), ("timeoutEnd", ASCENDING)])
    await scripts_db[mongo.codes_collection].create_index([("active", ASCENDING), ("expiresAt", ASCENDING)])
    await scripts_db[mongo.scripts_collection].create_index(
        [("promotionCode", ASCENDING), ("promotionActive", ASCENDING)]
    )
    await scripts_db[mongo.scripts_collection].create_index(
        [("isBumped", ASCENDING), ("bumpExpire", ASCENDING)]
    )
    logger.info("Ensured batch job indexes")


def sanitize_mongodb_url(url: str) -> str:
    """
    Hide password in MongoDB URL for safe logging.
    """
    if "@" not in url or "://" not in url:
        return url

    protocol, rest = url.split("://", 1)
    credentials, host = rest.rsplit("@", 1)
    if ":" in credentials:
        username = credentials.split(":", 1)[0]
        return f"{protocol}://{username}:***@{host}"
    return url
