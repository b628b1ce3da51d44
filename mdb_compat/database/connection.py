"""
Shared MongoDB Client

Provides one Motor client per process so that every Database created by a
compatibility context shares the same connection pool.

This module is part of MDB_COMPAT.

Usage:
    from mdb_compat.database import get_shared_mongo_client

    client = get_shared_mongo_client(mongo_uri)
    db = Database(client[db_name])
"""

import logging
import threading

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import (
    ConnectionFailure,
    InvalidOperation,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from ..constants import (
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
)

logger = logging.getLogger(__name__)

_shared_client: AsyncIOMotorClient | None = None
_shared_uri: str | None = None
_init_lock = threading.Lock()


def get_shared_mongo_client(
    mongo_uri: str,
    max_pool_size: int = DEFAULT_MAX_POOL_SIZE,
    min_pool_size: int = DEFAULT_MIN_POOL_SIZE,
    server_selection_timeout_ms: int = DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
    retry_writes: bool = True,
    retry_reads: bool = True,
) -> AsyncIOMotorClient:
    """
    Gets or creates the shared MongoDB client instance.

    Args:
        mongo_uri: MongoDB connection URI
        max_pool_size: Maximum connection pool size
        min_pool_size: Minimum connection pool size
        server_selection_timeout_ms: Server selection timeout in milliseconds
        retry_writes: Enable automatic retry for write operations
        retry_reads: Enable automatic retry for read operations

    Returns:
        Shared AsyncIOMotorClient instance

    Raises:
        ValueError: If a client already exists for a different URI
    """
    global _shared_client, _shared_uri

    with _init_lock:
        if _shared_client is not None:
            if _shared_uri != mongo_uri:
                raise ValueError(
                    "A shared MongoDB client already exists for a different URI; "
                    "call close_shared_client() first"
                )
            return _shared_client

        logger.info(
            f"Creating shared MongoDB client (max_pool_size={max_pool_size}, "
            f"min_pool_size={min_pool_size})"
        )
        try:
            _shared_client = AsyncIOMotorClient(
                mongo_uri,
                serverSelectionTimeoutMS=server_selection_timeout_ms,
                appname="MDB_COMPAT",
                maxPoolSize=max_pool_size,
                minPoolSize=min_pool_size,
                retryWrites=retry_writes,
                retryReads=retry_reads,
            )
            _shared_uri = mongo_uri
        except (ConnectionFailure, ServerSelectionTimeoutError, ValueError, TypeError) as e:
            logger.error(f"Failed to create shared MongoDB client: {e}", exc_info=True)
            _shared_client = None
            _shared_uri = None
            raise

    return _shared_client


async def verify_shared_client() -> bool:
    """
    Verifies that the shared MongoDB client is connected.

    Returns:
        True if client is connected and responsive, False otherwise
    """
    if _shared_client is None:
        logger.warning("Shared MongoDB client is None - cannot verify")
        return False

    try:
        await _shared_client.admin.command("ping")
        logger.debug("Shared MongoDB client verification successful")
        return True
    except (
        ConnectionFailure,
        ServerSelectionTimeoutError,
        OperationFailure,
        InvalidOperation,
    ) as e:
        logger.warning(f"Shared MongoDB client verification failed: {e}")
        return False


def close_shared_client() -> None:
    """
    Closes the shared MongoDB client.
    Should be called during application shutdown.
    """
    global _shared_client, _shared_uri

    if _shared_client is not None:
        try:
            _shared_client.close()
            logger.info("Shared MongoDB client closed")
        except (InvalidOperation, AttributeError, RuntimeError) as e:
            logger.warning(f"Error closing shared MongoDB client: {e}")
        finally:
            _shared_client = None
            _shared_uri = None
