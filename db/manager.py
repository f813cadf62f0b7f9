"""
Database connection manager module.

Provides a singleton DatabaseManager class for MongoDB connections with
retry logic, connection pooling, and event loop handling.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from datetime import UTC
from typing import TYPE_CHECKING, Any, Final, Self, TypeVar

import certifi
from pymongo import AsyncMongoClient
from pymongo.errors import ConnectionFailure, NetworkTimeout, OperationFailure

from core.exceptions import StoreUnavailableError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from pymongo.asynchronous.database import AsyncDatabase

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MONGO_URI: Final[str] = "mongodb://localhost:27017"
MONGODB_URI_ENV_VAR: Final[str] = "MONGODB_URI"
TRANSIENT_ERROR_CODES: Final[frozenset[int]] = frozenset({11600, 11602})


def _get_mongo_uri() -> str:
    return os.getenv(MONGODB_URI_ENV_VAR, "").strip() or DEFAULT_MONGO_URI


class DatabaseManager:
    """
    Singleton class to manage the MongoDB client and database connection.

    This class handles:
    - Connection pooling and lifecycle management
    - Event loop change detection and reconnection
    - Retry logic with backoff for transient failures
    - Thread-safe singleton pattern
    Environment Variables:
        MONGODB_URI: MongoDB URI (default: mongodb://localhost:27017)
        MONGODB_DATABASE: Database name (default: ecoride)
        MONGODB_MAX_POOL_SIZE: Connection pool size (default: 50)
        MONGODB_CONNECTION_TIMEOUT_MS: Connection timeout (default: 5000)
        MONGODB_SERVER_SELECTION_TIMEOUT_MS: Server selection timeout (default: 10000)
        MONGODB_SOCKET_TIMEOUT_MS: Socket timeout (default: 30000)
        MONGODB_MAX_RETRY_ATTEMPTS: Attempts per operation (default: 3)
    """

    _instance: DatabaseManager | None = None
    _lock = threading.Lock()

    def __new__(cls) -> Self:
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        """Initialize the database manager with configuration from environment."""
        if not getattr(self, "_initialized", False):
            self._client: AsyncMongoClient | None = None
            self._db: AsyncDatabase | None = None
            self._bound_loop: asyncio.AbstractEventLoop | None = None
            self._connection_healthy = True
            self._beanie_initialized = False
            self._initialized = True

            self._max_pool_size = int(os.getenv("MONGODB_MAX_POOL_SIZE", "50"))
            self._connection_timeout_ms = int(
                os.getenv("MONGODB_CONNECTION_TIMEOUT_MS", "5000"),
            )
            self._server_selection_timeout_ms = int(
                os.getenv("MONGODB_SERVER_SELECTION_TIMEOUT_MS", "10000"),
            )
            self._socket_timeout_ms = int(
                os.getenv("MONGODB_SOCKET_TIMEOUT_MS", "30000"),
            )
            self._max_retry_attempts = int(
                os.getenv("MONGODB_MAX_RETRY_ATTEMPTS", "3"),
            )
            self._retry_backoff = (0.5, 1.0, 2.0)
            self._db_name = os.getenv("MONGODB_DATABASE", "ecoride")

            logger.debug(
                "Database configuration initialized with pool size %s",
                self._max_pool_size,
            )

    def _initialize_client(self) -> None:
        """
        Initialize the MongoDB client with proper connection settings.

        Raises:
            Exception: If client initialization fails.
        """
        try:
            mongo_uri = _get_mongo_uri()

            logger.debug("Initializing MongoDB client")

            client_kwargs: dict[str, Any] = {
                "tz_aware": True,
                "tzinfo": UTC,
                "maxPoolSize": self._max_pool_size,
                "minPoolSize": 0,
                "maxIdleTimeMS": 60000,
                "connectTimeoutMS": self._connection_timeout_ms,
                "serverSelectionTimeoutMS": self._server_selection_timeout_ms,
                "socketTimeoutMS": self._socket_timeout_ms,
                "retryWrites": True,
                "retryReads": True,
                "appname": "EcoRide",
            }

            # Configure TLS for MongoDB Atlas connections
            if mongo_uri.startswith("mongodb+srv://"):
                client_kwargs.update(tls=True, tlsCAFile=certifi.where())

            self._client = AsyncMongoClient(mongo_uri, **client_kwargs)
            self._db = self._client[self._db_name]
            self._connection_healthy = True
            logger.info("MongoDB client initialized successfully")

        except Exception:
            self._connection_healthy = False
            logger.exception("Failed to initialize MongoDB client")
            raise

    @staticmethod
    def _get_current_loop() -> asyncio.AbstractEventLoop | None:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _reset_client(self) -> None:
        self._client = None
        self._db = None
        self._bound_loop = None
        self._beanie_initialized = False

    def _check_loop_and_reconnect(self) -> None:
        """Drop the client when its event loop closed or changed."""
        current_loop = self._get_current_loop()
        if self._client is None:
            return
        if self._bound_loop is not None and self._bound_loop.is_closed():
            logger.info("Event loop is closed, reconnecting MongoDB client")
            self._reset_client()
        elif current_loop is not None and self._bound_loop != current_loop:
            logger.info("Event loop changed, reconnecting MongoDB client")
            self._reset_client()

    @property
    def db(self) -> AsyncDatabase:
        """
        Get the database instance, initializing if necessary.

        Raises:
            RuntimeError: If database cannot be initialized.
        """
        self._check_loop_and_reconnect()
        if self._db is None or not self._connection_healthy:
            self._initialize_client()
            self._bound_loop = self._get_current_loop()
        if self._db is None:
            msg = "Database instance could not be initialized."
            raise RuntimeError(msg)
        return self._db

    async def init_beanie(self) -> None:
        """
        Initialize Beanie ODM with all document models.

        This should be called once during application startup.
        """
        self._check_loop_and_reconnect()
        if self._beanie_initialized and self._db is not None:
            logger.debug("Beanie already initialized, skipping")
            return

        from beanie import init_beanie

        from db.models import ALL_DOCUMENT_MODELS

        await init_beanie(database=self.db, document_models=ALL_DOCUMENT_MODELS)
        self._beanie_initialized = True
        logger.info(
            "Beanie ODM initialized with %d document models",
            len(ALL_DOCUMENT_MODELS),
        )

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
        operation_name: str = "database operation",
    ) -> T:
        """Execute a database operation, retrying connection-level failures.

        Args:
            operation: Async function to execute
            max_attempts: Maximum number of attempts
            operation_name: Name of operation for logging

        Returns:
            Result of the operation

        Raises:
            StoreUnavailableError: If the store is still unreachable after
                all attempts. Other driver errors (duplicate keys, invalid
                queries) propagate unchanged on the first occurrence.
        """
        if max_attempts is None:
            max_attempts = self._max_retry_attempts

        attempts = 0
        while True:
            attempts += 1
            retry_delay = self._retry_backoff[
                min(attempts - 1, len(self._retry_backoff) - 1)
            ]
            try:
                return await operation()
            except (ConnectionFailure, NetworkTimeout) as e:
                self._connection_healthy = False
                if attempts >= max_attempts:
                    logger.error(
                        "All %d attempts for %s failed. Last error: %s",
                        max_attempts,
                        operation_name,
                        str(e),
                    )
                    msg = f"Database unavailable during {operation_name}"
                    raise StoreUnavailableError(msg) from e
                logger.warning(
                    "Attempt %d/%d for %s failed due to connection error: %s. "
                    "Retrying in %.1fs...",
                    attempts,
                    max_attempts,
                    operation_name,
                    str(e),
                    retry_delay,
                )
            except OperationFailure as e:
                is_transient = (
                    e.has_error_label("TransientTransactionError")
                    or e.code in TRANSIENT_ERROR_CODES
                )
                if not is_transient:
                    raise
                if attempts >= max_attempts:
                    msg = f"Transient database failure during {operation_name}"
                    raise StoreUnavailableError(msg) from e
                logger.warning(
                    "Attempt %d/%d for %s failed with transient OperationFailure "
                    "(Code: %s). Retrying in %.1fs...",
                    attempts,
                    max_attempts,
                    operation_name,
                    e.code,
                    retry_delay,
                )
            await asyncio.sleep(retry_delay)

    async def cleanup_connections(self) -> None:
        """Clean up MongoDB client connections."""
        if self._client:
            try:
                logger.info("Closing MongoDB client connections...")
                await self._client.close()
            except Exception:
                logger.exception("Error closing MongoDB client")
            finally:
                self._reset_client()
                self._connection_healthy = False
                logger.info("MongoDB client state reset")


# Singleton instance
db_manager = DatabaseManager()
