"""
PostgreSQL dialect adapter.

Connections come from an asyncpg pool (DatabaseClient). Introspection
reads information_schema; failures are classified from SQLSTATE codes.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, List, Optional
from urllib.parse import urlparse

import asyncpg

from ...config import DatabaseConfig
from ...config_constants import DatabaseProvider
from ...domain.base_enums import ErrorKind
from ...domain.schema_nodes import ColumnNode, RelationshipNode, SchemaSnapshot, TableNode
from ...domain.types import Rows
from ...utils.logging import get_module_logger
from ...utils.tracing import current_trace_id
from ..database_client import DatabaseClient
from .base import DatabaseAdapter


logger = get_module_logger()


GENERATION_SYSTEM_PROMPT = """You are a senior PostgreSQL engineer writing read-only queries.

# DIALECT
- Use PostgreSQL syntax.
- Quote identifiers with double quotes when they are mixed case or reserved words.
- Prefer ILIKE for case-insensitive text matching.
- Use LIMIT / OFFSET for pagination and COALESCE for null handling.
- CTEs and window functions are supported.

# SAFETY
- Generate a single read-only SELECT (or WITH ... SELECT) statement.
- Never use INSERT, UPDATE, DELETE, MERGE, TRUNCATE, CREATE, ALTER, DROP, GRANT, REVOKE, CALL or DO.

# STYLE
- Keywords uppercase, explicit JOIN ... ON with short aliases.
- Use only tables and columns that appear in the provided schema.

# OUTPUT
- Return ONLY the SQL query. No explanations, no markdown."""


CORRECTION_SYSTEM_PROMPT = """You are an expert PostgreSQL debugger.

# TASK
- You receive a failed query, the PostgreSQL error and the relevant schema.
- Typical errors: relation does not exist, column does not exist,
  syntax error at or near, column reference is ambiguous,
  operator does not exist (type mismatch).
- Fix the query while preserving its original intent.

# RULES
- Produce a single read-only SELECT (or WITH ... SELECT) statement.
- Map invalid table or column names to the closest names in the schema.
- Qualify ambiguous columns with table aliases.
- Add explicit casts when types do not match.

# OUTPUT
- Return ONLY the corrected SQL query. No explanations, no markdown."""


# SQLSTATE classes and codes worth a plain retry
TRANSIENT_SQLSTATE_CLASSES = frozenset({"08"})
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01", "53300", "57P01", "57P02", "57P03"})
TIMEOUT_SQLSTATES = frozenset({"57014"})
# 25006: write attempted inside a READ ONLY transaction
PERMISSION_SQLSTATES = frozenset({"42501", "25006"})
PERMISSION_SQLSTATE_CLASSES = frozenset({"28"})
SYNTAX_SQLSTATE_CLASSES = frozenset({"42", "22", "21"})


TABLES_QUERY = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = $1
        AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

# Single join path with aggregation instead of one subquery per constraint type
COLUMNS_QUERY = """
    SELECT
        c.column_name,
        c.is_nullable,
        c.data_type,
        c.character_maximum_length,
        COALESCE(bool_or(tc.constraint_type = 'PRIMARY KEY'), false) AS is_primary_key,
        COALESCE(bool_or(tc.constraint_type = 'FOREIGN KEY'), false) AS is_foreign_key
    FROM information_schema.columns c
    LEFT JOIN information_schema.key_column_usage kcu
        ON c.column_name = kcu.column_name
        AND c.table_schema = kcu.table_schema
        AND c.table_name = kcu.table_name
    LEFT JOIN information_schema.table_constraints tc
        ON kcu.constraint_name = tc.constraint_name
        AND kcu.table_schema = tc.table_schema
        AND tc.table_schema = $1
        AND tc.table_name = $2
    WHERE c.table_schema = $1 AND c.table_name = $2
    GROUP BY c.column_name, c.is_nullable, c.data_type,
        c.character_maximum_length, c.ordinal_position
    ORDER BY c.ordinal_position
"""

RELATIONSHIPS_QUERY = """
    SELECT
        tc.table_name AS from_table,
        kcu.column_name AS from_column,
        ccu.table_name AS to_table,
        ccu.column_name AS to_column
    FROM information_schema.table_constraints AS tc
    JOIN information_schema.key_column_usage AS kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
        AND kcu.table_schema = $1
    JOIN information_schema.constraint_column_usage AS ccu
        ON ccu.constraint_name = tc.constraint_name
        AND ccu.table_schema = tc.table_schema
    WHERE tc.constraint_type = 'FOREIGN KEY'
        AND tc.table_schema = $1
    ORDER BY tc.table_name, tc.constraint_name
"""


def database_name_from_dsn(dsn: str) -> str:
    """Database name from a postgresql:// URL ("postgres" when absent)."""
    path = urlparse(dsn).path.lstrip("/")
    return path or "postgres"


class PostgreSqlAdapter(DatabaseAdapter):
    """
    PostgreSQL adapter backed by an asyncpg pool.

    Statements run inside a read-only transaction with the configured
    command timeout.
    """

    provider = DatabaseProvider.POSTGRESQL

    def __init__(self, config: DatabaseConfig, client: Optional[DatabaseClient] = None):
        super().__init__(config)
        self.client = client or DatabaseClient(
            dsn=config.connection_string,
            name="target",
            min_size=config.connection_pool_min_size,
            max_size=config.connection_pool_max_size,
            command_timeout_seconds=config.command_timeout_seconds,
            connection_timeout_seconds=config.connection_timeout_seconds,
            application_name=config.application_name,
            search_path=config.default_schema,
        )
        self._database_name = database_name_from_dsn(config.connection_string)

    @property
    def database_name(self) -> str:
        return self._database_name

    async def connect(self) -> None:
        await self.client.connect()

    async def close(self) -> None:
        await self.client.close()

    @asynccontextmanager
    async def open_connection(self):
        async with self.client.acquire_connection() as conn:
            yield conn

    async def fetch_rows(self, connection: Any, sql: str, timeout_seconds: float) -> Rows:
        async with connection.transaction(readonly=True):
            records = await connection.fetch(sql, timeout=timeout_seconds)
        return [self.json_safe_row(dict(record)) for record in records]

    async def get_schema(self, connection: Any) -> SchemaSnapshot:
        schema = self.config.default_schema
        trace_id = current_trace_id()
        logger.info("Scanning PostgreSQL schema", schema=schema, trace_id=trace_id)

        table_rows = await connection.fetch(TABLES_QUERY, schema)
        tables: List[TableNode] = []
        for row in table_rows:
            table_name = row["table_name"]
            column_rows = await connection.fetch(COLUMNS_QUERY, schema, table_name)
            columns = [
                ColumnNode(
                    column_name=c["column_name"],
                    data_type=c["data_type"],
                    is_nullable=(c["is_nullable"] == "YES"),
                    max_length=c["character_maximum_length"],
                    is_primary_key=c["is_primary_key"],
                    is_foreign_key=c["is_foreign_key"],
                )
                for c in column_rows
            ]
            tables.append(TableNode(table_name=table_name, schema_name=schema, columns=columns))

        relationship_rows = await connection.fetch(RELATIONSHIPS_QUERY, schema)
        relationships = [
            RelationshipNode(
                from_table=r["from_table"],
                from_column=r["from_column"],
                to_table=r["to_table"],
                to_column=r["to_column"],
                schema_name=schema,
            )
            for r in relationship_rows
        ]

        logger.info(
            "PostgreSQL schema scanned",
            schema=schema,
            tables=len(tables),
            relationships=len(relationships),
            trace_id=trace_id
        )

        return SchemaSnapshot(
            database_name=self.database_name,
            tables=tables,
            relationships=relationships,
        )

    async def test_connection(self, connection_string: str) -> bool:
        try:
            conn = await asyncpg.connect(
                dsn=connection_string,
                timeout=self.config.connection_timeout_seconds,
            )
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
            logger.error(
                "PostgreSQL connection test failed",
                error=str(e),
                error_type=type(e).__name__,
                trace_id=current_trace_id()
            )
            return False

        try:
            return await conn.fetchval("SELECT 1") == 1
        finally:
            await conn.close()

    def safe_identifier(self, name: str) -> str:
        if not name or not name.strip():
            return name
        if name.startswith('"') and name.endswith('"'):
            return name
        parts = [part.strip('"') for part in name.split(".") if part]
        return ".".join('"' + part.replace('"', '""') + '"' for part in parts)

    def system_prompt(self) -> str:
        return GENERATION_SYSTEM_PROMPT

    def correction_system_prompt(self) -> str:
        return CORRECTION_SYSTEM_PROMPT

    def catalog_hint(self) -> str:
        return (
            "Answer from information_schema.tables "
            f"WHERE table_schema = '{self.config.default_schema}' AND table_type = 'BASE TABLE'."
        )

    def error_code(self, exc: BaseException) -> Optional[str]:
        return getattr(exc, "sqlstate", None)

    def _classify(self, exc: BaseException) -> ErrorKind:
        sqlstate = self.error_code(exc)
        if sqlstate:
            sqlstate_class = sqlstate[:2]
            if sqlstate_class in TRANSIENT_SQLSTATE_CLASSES or sqlstate in TRANSIENT_SQLSTATES:
                return ErrorKind.TRANSIENT
            if sqlstate in TIMEOUT_SQLSTATES:
                return ErrorKind.TIMEOUT
            if sqlstate in PERMISSION_SQLSTATES or sqlstate_class in PERMISSION_SQLSTATE_CLASSES:
                return ErrorKind.PERMISSION
            if sqlstate_class in SYNTAX_SQLSTATE_CLASSES:
                return ErrorKind.SYNTAX
            return ErrorKind.UNKNOWN

        # TimeoutError is an OSError subclass, so check it first
        if isinstance(exc, asyncio.TimeoutError):
            return ErrorKind.TIMEOUT
        if isinstance(exc, (ConnectionError, OSError)):
            return ErrorKind.TRANSIENT
        return ErrorKind.UNKNOWN
