"""
Dialect adapter contract.

A DatabaseAdapter owns everything that differs between SQL engines:
connections, statement execution, schema introspection, identifier
quoting, error classification and the dialect's system prompts. The
pipeline only talks to this interface.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager, Optional

from ...config import DatabaseConfig
from ...config_constants import DatabaseProvider
from ...domain.base_enums import ErrorKind
from ...domain.errors import DatabaseConnectionError
from ...domain.schema_nodes import SchemaSnapshot
from ...domain.types import Row, Rows
from ...utils.logging import get_module_logger


logger = get_module_logger()


class DatabaseAdapter(ABC):
    """
    Base class for dialect adapters.

    Subclasses set ``provider`` and implement connection handling,
    introspection and classification for one SQL engine.
    """

    provider: DatabaseProvider

    def __init__(self, config: DatabaseConfig):
        self.config = config

    @property
    @abstractmethod
    def database_name(self) -> str:
        """Name of the target database, used to scope the similarity index."""

    async def connect(self) -> None:
        """Prepare shared resources (pools). Default: nothing to prepare."""

    async def close(self) -> None:
        """Release shared resources. Default: nothing to release."""

    @abstractmethod
    def open_connection(self) -> AsyncContextManager[Any]:
        """Scoped connection; released on every exit path."""

    @staticmethod
    def json_safe_row(row: Row) -> Row:
        """Binary values (BLOB, bytea) become lowercase hex strings."""
        return {
            name: bytes(value).hex() if isinstance(value, (bytes, bytearray, memoryview)) else value
            for name, value in row.items()
        }

    @abstractmethod
    async def fetch_rows(self, connection: Any, sql: str, timeout_seconds: float) -> Rows:
        """Execute a read-only statement and materialize its rows."""

    @abstractmethod
    async def get_schema(self, connection: Any) -> SchemaSnapshot:
        """Introspect tables, columns and foreign keys."""

    @abstractmethod
    async def test_connection(self, connection_string: str) -> bool:
        """Return True when a connection can be opened with the given string."""

    @abstractmethod
    def safe_identifier(self, name: str) -> str:
        """Quote an identifier (dotted names are quoted part by part)."""

    @abstractmethod
    def system_prompt(self) -> str:
        """System prompt for SQL generation in this dialect."""

    @abstractmethod
    def correction_system_prompt(self) -> str:
        """System prompt for SQL correction in this dialect."""

    @abstractmethod
    def catalog_hint(self) -> str:
        """How to list tables from this dialect's catalog."""

    @abstractmethod
    def error_code(self, exc: BaseException) -> Optional[str]:
        """Structured error code carried by a driver exception, if any."""

    @abstractmethod
    def _classify(self, exc: BaseException) -> ErrorKind:
        """Dialect default classification from structured error data."""

    def classify_error(self, exc: BaseException) -> ErrorKind:
        """
        Classify a driver exception.

        Configured overrides (keyed by SQLSTATE or engine error name) win
        over the dialect defaults.
        """
        # Pool not connected or unreachable: the statement itself may be fine
        if isinstance(exc, DatabaseConnectionError):
            return ErrorKind.TRANSIENT
        code = self.error_code(exc)
        if code is not None:
            override = self.config.error_kind_overrides.get(code)
            if override is not None:
                logger.debug("Error kind overridden by configuration", code=code, kind=override.value)
                return override
        return self._classify(exc)

    def is_transient_error(self, exc: BaseException) -> bool:
        return self.classify_error(exc) == ErrorKind.TRANSIENT
