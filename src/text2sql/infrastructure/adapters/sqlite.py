"""
SQLite dialect adapter.

Uses the standard library sqlite3 module; every blocking call runs in a
worker thread. The database file is opened read-only.
"""

import asyncio
import sqlite3
import threading
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, List, Optional

from ...config import DatabaseConfig
from ...config_constants import DatabaseProvider
from ...domain.base_enums import ErrorKind
from ...domain.schema_nodes import ColumnNode, RelationshipNode, SchemaSnapshot, TableNode
from ...domain.types import Rows
from ...utils.logging import get_module_logger
from ...utils.tracing import current_trace_id
from .base import DatabaseAdapter


logger = get_module_logger()


GENERATION_SYSTEM_PROMPT = """You are an expert in SQLite writing read-only queries.

# DIALECT
- Use SQLite syntax. Identifiers may be quoted with double quotes.
- Use LIMIT / OFFSET for pagination.
- Use LIKE for text matching (case-insensitive for ASCII in SQLite).
- Date functions: date(), datetime(), strftime().
- No stored procedures, no RIGHT JOIN on old versions; prefer LEFT JOIN.

# SAFETY
- Generate a single read-only SELECT (or WITH ... SELECT) statement.
- Never use INSERT, UPDATE, DELETE, REPLACE, CREATE, ALTER, DROP, ATTACH or PRAGMA.

# OUTPUT
- Use only tables and columns that appear in the provided schema.
- Return ONLY the SQL query. No explanations, no markdown."""


CORRECTION_SYSTEM_PROMPT = """You are an expert SQLite debugger.

# TASK
- You receive a failed query, the SQLite error and the relevant schema.
- Typical errors: no such table, no such column, near "X": syntax error,
  ambiguous column name.
- Fix the query while preserving its original intent.

# RULES
- Produce a single read-only SELECT (or WITH ... SELECT) statement.
- Map invalid table or column names to the closest names in the schema.
- Qualify ambiguous columns with table aliases.
- When a scalar subquery returns several rows, aggregate it or use IN / EXISTS.

# OUTPUT
- Return ONLY the corrected SQL query. No explanations, no markdown."""


# sqlite_errorname -> kind
SQLITE_ERROR_KINDS = {
    "SQLITE_BUSY": ErrorKind.TRANSIENT,
    "SQLITE_LOCKED": ErrorKind.TRANSIENT,
    "SQLITE_INTERRUPT": ErrorKind.TIMEOUT,
    "SQLITE_CANTOPEN": ErrorKind.TRANSIENT,
    "SQLITE_AUTH": ErrorKind.PERMISSION,
    "SQLITE_PERM": ErrorKind.PERMISSION,
    "SQLITE_READONLY": ErrorKind.PERMISSION,
    "SQLITE_ERROR": ErrorKind.SYNTAX,
}

# Progress handler granularity (virtual machine instructions)
PROGRESS_HANDLER_STEPS = 1000


def database_path_from_connection_string(connection_string: str) -> str:
    """
    Extract the database file path.

    Accepts "sqlite:///path/to/file.db", "Data Source=path" or a bare path.
    """
    value = connection_string.strip()
    if value.startswith("sqlite:///"):
        return value[len("sqlite:///"):]
    if value.startswith("sqlite://"):
        return value[len("sqlite://"):]
    for part in value.split(";"):
        key, sep, path = part.partition("=")
        if sep and key.strip().lower() in ("data source", "datasource", "filename"):
            return path.strip()
    return value


def _connect_read_only(path: str, timeout_seconds: float) -> sqlite3.Connection:
    uri = f"{Path(path).resolve().as_uri()}?mode=ro"
    return sqlite3.connect(uri, uri=True, timeout=timeout_seconds, check_same_thread=False)


def _fetch_rows_blocking(
    conn: sqlite3.Connection,
    sql: str,
    timeout_seconds: float,
    cancelled: threading.Event,
) -> Rows:
    deadline = time.monotonic() + timeout_seconds

    def _should_abort() -> int:
        return 1 if cancelled.is_set() or time.monotonic() > deadline else 0

    conn.set_progress_handler(_should_abort, PROGRESS_HANDLER_STEPS)
    try:
        cursor = conn.execute(sql)
        names = [description[0] for description in cursor.description or []]
        return [DatabaseAdapter.json_safe_row(dict(zip(names, row))) for row in cursor.fetchall()]
    finally:
        conn.set_progress_handler(None, 0)


def _scan_schema_blocking(conn: sqlite3.Connection, database_name: str) -> SchemaSnapshot:
    table_names = [
        row[0]
        for row in conn.execute(
            "SELECT name FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
    ]

    tables: List[TableNode] = []
    relationships: List[RelationshipNode] = []
    for table_name in table_names:
        quoted = '"' + table_name.replace('"', '""') + '"'

        # id, seq, table, from, to, on_update, on_delete, match
        fk_rows = conn.execute(f"PRAGMA foreign_key_list({quoted})").fetchall()
        fk_columns = {row[3] for row in fk_rows}
        for row in fk_rows:
            relationships.append(RelationshipNode(
                from_table=table_name,
                from_column=row[3],
                to_table=row[2],
                # "to" is NULL when the reference targets the primary key implicitly
                to_column=row[4] or "rowid",
                schema_name="main",
            ))

        # cid, name, type, notnull, dflt_value, pk
        columns = [
            ColumnNode(
                column_name=row[1],
                data_type=row[2] or "ANY",
                is_nullable=not row[3],
                is_primary_key=row[5] > 0,
                is_foreign_key=row[1] in fk_columns,
            )
            for row in conn.execute(f"PRAGMA table_info({quoted})").fetchall()
        ]
        tables.append(TableNode(table_name=table_name, schema_name="main", columns=columns))

    return SchemaSnapshot(database_name=database_name, tables=tables, relationships=relationships)


class SqliteAdapter(DatabaseAdapter):
    """
    SQLite adapter over stdlib sqlite3.

    The command timeout is enforced with a progress handler that
    interrupts the statement once the deadline passes.
    """

    provider = DatabaseProvider.SQLITE

    def __init__(self, config: DatabaseConfig):
        super().__init__(config)
        self.path = database_path_from_connection_string(config.connection_string)

    @property
    def database_name(self) -> str:
        return Path(self.path).stem or "main"

    @asynccontextmanager
    async def open_connection(self):
        conn = await asyncio.to_thread(
            _connect_read_only, self.path, self.config.connection_timeout_seconds
        )
        try:
            yield conn
        finally:
            await asyncio.to_thread(conn.close)

    async def _run_on_connection(
        self,
        connection: sqlite3.Connection,
        func: Callable[..., Any],
        *args: Any,
        cancelled: Optional[threading.Event] = None,
    ) -> Any:
        """
        Run a blocking call on the connection in a worker thread.

        On cancellation the running statement is interrupted and the worker
        is awaited before CancelledError propagates, so the connection is
        never closed while a thread is still using it.
        """
        worker = asyncio.ensure_future(asyncio.to_thread(func, connection, *args))
        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            if cancelled is not None:
                cancelled.set()
            connection.interrupt()
            await asyncio.wait({worker})
            if not worker.cancelled() and worker.exception() is not None:
                logger.info(
                    "SQLite statement interrupted by cancellation",
                    error=str(worker.exception()),
                    trace_id=current_trace_id()
                )
            raise

    async def fetch_rows(self, connection: sqlite3.Connection, sql: str, timeout_seconds: float) -> Rows:
        cancelled = threading.Event()
        return await self._run_on_connection(
            connection, _fetch_rows_blocking, sql, timeout_seconds, cancelled, cancelled=cancelled
        )

    async def get_schema(self, connection: sqlite3.Connection) -> SchemaSnapshot:
        trace_id = current_trace_id()
        logger.info("Scanning SQLite schema", path=self.path, trace_id=trace_id)
        snapshot = await self._run_on_connection(connection, _scan_schema_blocking, self.database_name)
        logger.info(
            "SQLite schema scanned",
            tables=len(snapshot.tables),
            relationships=len(snapshot.relationships),
            trace_id=trace_id
        )
        return snapshot

    async def test_connection(self, connection_string: str) -> bool:
        path = database_path_from_connection_string(connection_string)

        def _probe() -> bool:
            conn = _connect_read_only(path, self.config.connection_timeout_seconds)
            try:
                return conn.execute("SELECT 1").fetchone()[0] == 1
            finally:
                conn.close()

        try:
            return await asyncio.to_thread(_probe)
        except sqlite3.Error as e:
            logger.error(
                "SQLite connection test failed",
                path=path,
                error=str(e),
                trace_id=current_trace_id()
            )
            return False

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
        return "Answer from sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'."

    def error_code(self, exc: BaseException) -> Optional[str]:
        return getattr(exc, "sqlite_errorname", None)

    def _classify(self, exc: BaseException) -> ErrorKind:
        name = self.error_code(exc)
        if name:
            # Extended codes (SQLITE_BUSY_SNAPSHOT, SQLITE_READONLY_DBMOVED) map by primary code
            primary = "_".join(name.split("_")[:2])
            return SQLITE_ERROR_KINDS.get(name, SQLITE_ERROR_KINDS.get(primary, ErrorKind.UNKNOWN))
        # Raised by the driver itself (e.g. several statements at once)
        if isinstance(exc, sqlite3.ProgrammingError):
            return ErrorKind.SYNTAX
        return ErrorKind.UNKNOWN
