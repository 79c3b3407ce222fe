"""
PostgreSQL connection pool client using asyncpg.

This module provides an async pool wrapper shared by the PostgreSQL
dialect adapter (target database) and the pgvector similarity index
(embedding database). It knows nothing about schemas or SQL dialects.
"""

from typing import Any, Dict, Optional
from contextlib import asynccontextmanager
import asyncpg

from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id
from ..domain.errors import DatabaseConnectionError


logger = get_module_logger()


class DatabaseClient:
    """
    Low-level async PostgreSQL client using asyncpg.

    This is a thin infrastructure layer for pooled connections.
    Statement execution, introspection and error classification
    live in the dialect adapter and the vector repository.

    Usage:
        client = DatabaseClient(dsn, name="target")
        await client.connect()

        async with client.acquire_connection() as conn:
            rows = await conn.fetch("SELECT 1")

        await client.close()
    """

    def __init__(
        self,
        dsn: str,
        name: str = "main",
        min_size: int = 1,
        max_size: int = 5,
        command_timeout_seconds: Optional[float] = None,
        connection_timeout_seconds: float = 10,
        application_name: str = "text2sql-agent",
        search_path: Optional[str] = None,
    ):
        """
        Initialize the pool client.

        Args:
            dsn: PostgreSQL connection string
            name: Label used in logs (e.g. "target", "vector_store")
            min_size: Minimum pooled connections
            max_size: Maximum pooled connections
            command_timeout_seconds: Default per-statement timeout
            connection_timeout_seconds: Timeout for establishing a connection
            application_name: Reported in pg_stat_activity
            search_path: Optional schema search path for every connection
        """
        self.dsn = dsn
        self.name = name
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout_seconds = command_timeout_seconds
        self.connection_timeout_seconds = connection_timeout_seconds
        self.application_name = application_name
        self.search_path = search_path
        self._pool: Optional[asyncpg.Pool] = None
        self._is_connected = False

        logger.info(
            "DatabaseClient initialized",
            pool_name=name,
            connection_pool_size=max_size,
            command_timeout_seconds=command_timeout_seconds,
            application_name=application_name
        )

    async def connect(self) -> None:
        """
        Establish connection pool to the database.

        Raises:
            DatabaseConnectionError: If connection fails
        """
        if self._is_connected:
            logger.warning("Database client already connected", pool_name=self.name)
            return

        trace_id = current_trace_id()
        logger.info("Establishing database connection", pool_name=self.name, trace_id=trace_id)

        server_settings = {'application_name': self.application_name}
        if self.search_path:
            server_settings['search_path'] = self.search_path

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout_seconds,
                timeout=self.connection_timeout_seconds,
                server_settings=server_settings,
            )

            await self._test_connection(self._pool)

            self._is_connected = True
            logger.info(
                "Database connection established successfully",
                pool_name=self.name,
                pool_size=self.max_size,
                trace_id=trace_id
            )

        except asyncpg.InvalidCatalogNameError as e:
            error_msg = f"Database does not exist: {e}"
            logger.error(error_msg, pool_name=self.name, trace_id=trace_id)
            raise DatabaseConnectionError(error_msg) from e

        except asyncpg.InvalidPasswordError as e:
            error_msg = f"Authentication failed: {e}"
            logger.error(error_msg, pool_name=self.name, trace_id=trace_id)
            raise DatabaseConnectionError(error_msg) from e

        except DatabaseConnectionError:
            raise

        except Exception as e:
            error_msg = f"Failed to connect to database: {e}"
            logger.error(error_msg, pool_name=self.name, error_type=type(e).__name__, trace_id=trace_id)
            raise DatabaseConnectionError(error_msg) from e

    async def _test_connection(self, pool: asyncpg.Pool) -> None:
        trace_id = current_trace_id()
        try:
            async with pool.acquire() as conn:
                result = await conn.fetchval("SELECT 1")
                if result != 1:
                    raise DatabaseConnectionError(f"Connection test failed for {self.name} pool")
                logger.info(f"Connection test successful for {self.name} pool", trace_id=trace_id)
        except DatabaseConnectionError:
            await pool.close()
            raise
        except Exception as e:
            await pool.close()
            error_msg = f"Connection test failed for {self.name} pool: {e}"
            logger.error(error_msg, trace_id=trace_id)
            raise DatabaseConnectionError(error_msg) from e

    async def close(self) -> None:
        """Close database connection pool."""
        trace_id = current_trace_id()

        if self._pool:
            await self._pool.close()
            logger.info("Connection pool closed", pool_name=self.name, trace_id=trace_id)

        self._is_connected = False
        self._pool = None

    def is_connected(self) -> bool:
        """Check if database client is connected."""
        return self._is_connected and self._pool is not None

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform health check on the pool.

        Returns:
            Dictionary with status and connection details

        Example:
            {
                "status": "healthy",
                "connected": True,
                "pool_size": 5
            }
        """
        if not self.is_connected():
            return {
                "status": "unhealthy",
                "connected": False,
                "error": "Database client not connected"
            }

        try:
            async with self.acquire_connection() as conn:
                result = await conn.fetchval("SELECT 1")
        except Exception as e:
            logger.error(
                "Database health check failed",
                pool_name=self.name,
                error=str(e),
                error_type=type(e).__name__,
                trace_id=current_trace_id()
            )
            return {"status": "unhealthy", "connected": True, "error": str(e)}

        if result != 1:
            return {"status": "unhealthy", "connected": True, "error": "Connection test query failed"}

        return {"status": "healthy", "connected": True, "pool_size": self.max_size}

    @asynccontextmanager
    async def acquire_connection(self):
        """
        Context manager to acquire a database connection from the pool.

        Yields:
            asyncpg.Connection: Database connection

        Raises:
            DatabaseConnectionError: If the pool is not connected
        """
        if not self.is_connected() or self._pool is None:
            raise DatabaseConnectionError(f"Database client '{self.name}' is not connected")

        async with self._pool.acquire() as connection:
            yield connection
