"""
Unit tests for SQLExecutionRepository.

Runs statements against the SQLite shop database; transient failures
are injected by wrapping the real adapter.
"""

import sqlite3

import pytest

from text2sql.config import DatabaseConfig
from text2sql.config_constants import DatabaseProvider
from text2sql.domain.base_enums import ErrorKind
from text2sql.domain.execution import GeneratedSql
from text2sql.infrastructure.adapters.sqlite import SqliteAdapter
from text2sql.repositories.sql_execution import SQLExecutionRepository

from fakes import SleepRecorder


class FlakyAdapter(SqliteAdapter):
    """Fails the first ``failures`` executions with the given SQLite error name."""

    def __init__(self, config: DatabaseConfig, failures: int, error_name: str = "SQLITE_BUSY"):
        super().__init__(config)
        self.failures = failures
        self.error_name = error_name
        self.executions = 0

    async def fetch_rows(self, connection, sql, timeout_seconds):
        self.executions += 1
        if self.executions <= self.failures:
            exc = sqlite3.OperationalError("database is locked")
            exc.sqlite_errorname = self.error_name
            raise exc
        return await super().fetch_rows(connection, sql, timeout_seconds)


def _sql(text: str) -> GeneratedSql:
    return GeneratedSql(statement_text=text)


class TestExecute:
    """Tests for SQLExecutionRepository.execute."""

    async def test_success(self, sqlite_adapter, sqlite_config):
        repo = SQLExecutionRepository(sqlite_adapter, sqlite_config, sleep=SleepRecorder())

        outcome = await repo.execute(_sql("SELECT COUNT(*) AS n FROM customers"))

        assert outcome.success
        assert outcome.rows == [{"n": 3}]
        assert outcome.row_count == 1
        assert outcome.attempts == 1
        assert outcome.execution_time_ms >= 0

    async def test_syntax_error_returned_not_raised(self, sqlite_adapter, sqlite_config):
        sleep = SleepRecorder()
        repo = SQLExecutionRepository(sqlite_adapter, sqlite_config, sleep=sleep)

        outcome = await repo.execute(_sql("SELECT nme FROM customers"))

        assert not outcome.success
        assert outcome.error_kind == ErrorKind.SYNTAX
        assert "nme" in outcome.error_message
        assert outcome.attempts == 1
        assert sleep.delays == []

    async def test_transient_retried_with_backoff(self, sqlite_config):
        adapter = FlakyAdapter(sqlite_config, failures=2)
        sleep = SleepRecorder()
        repo = SQLExecutionRepository(adapter, sqlite_config, sleep=sleep)

        outcome = await repo.execute(_sql("SELECT 1 AS one"))

        assert outcome.success
        assert outcome.attempts == 3
        # retry_backoff_seconds=0.5: 0.5 * 2^0, 0.5 * 2^1
        assert sleep.delays == [0.5, 1.0]

    async def test_transient_budget_exhausted(self, sqlite_config):
        adapter = FlakyAdapter(sqlite_config, failures=10)
        sleep = SleepRecorder()
        repo = SQLExecutionRepository(adapter, sqlite_config, sleep=sleep)

        outcome = await repo.execute(_sql("SELECT 1"))

        assert not outcome.success
        assert outcome.error_kind == ErrorKind.TRANSIENT
        # max_retry_attempts=2 -> 3 executions, 2 pauses
        assert adapter.executions == 3
        assert len(sleep.delays) == 2

    async def test_non_transient_not_retried(self, sqlite_config):
        adapter = FlakyAdapter(sqlite_config, failures=5, error_name="SQLITE_PERM")
        repo = SQLExecutionRepository(adapter, sqlite_config, sleep=SleepRecorder())

        outcome = await repo.execute(_sql("SELECT 1"))

        assert outcome.error_kind == ErrorKind.PERMISSION
        assert adapter.executions == 1

    async def test_zero_retries(self, shop_db_path):
        config = DatabaseConfig(
            provider=DatabaseProvider.SQLITE,
            connection_string=str(shop_db_path),
            max_retry_attempts=0,
        )
        adapter = FlakyAdapter(config, failures=1)
        repo = SQLExecutionRepository(adapter, config, sleep=SleepRecorder())

        outcome = await repo.execute(_sql("SELECT 1"))

        assert not outcome.success
        assert adapter.executions == 1

    async def test_missing_database_file(self, tmp_path):
        config = DatabaseConfig(
            provider=DatabaseProvider.SQLITE,
            connection_string=str(tmp_path / "missing.db"),
            max_retry_attempts=1,
            retry_backoff_seconds=0.5,
        )
        sleep = SleepRecorder()
        repo = SQLExecutionRepository(SqliteAdapter(config), config, sleep=sleep)

        outcome = await repo.execute(_sql("SELECT 1"))

        assert not outcome.success
        assert outcome.error_message
        assert outcome.error_kind == ErrorKind.TRANSIENT
        assert outcome.attempts == 2
        assert sleep.delays == [0.5]

    def test_backoff_delay(self, sqlite_adapter):
        config = DatabaseConfig(connection_string="x", retry_backoff_seconds=1.0)
        repo = SQLExecutionRepository(sqlite_adapter, config)
        assert [repo.backoff_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]
