"""
SQL Execution Repository.

Runs a validated statement against the target database through the
dialect adapter and reports an ExecutionOutcome. Database failures are
returned, not raised.

Safety Features:
- Read-only execution (enforced by the adapter)
- Timeout protection: configurable command timeout
- Scoped connections, released on every exit path

Retry Policy:
- Failures are classified by the adapter (transient, syntax, permission,
  timeout, unknown)
- Transient failures are retried with the SAME statement up to
  max_retry_attempts times, waiting retry_backoff_seconds * 2^(n-1)
  before retry n
- Every other kind returns immediately; asking for a different
  statement is the orchestrator's job

Usage:
    repo = SQLExecutionRepository(adapter, config)
    outcome = await repo.execute(GeneratedSql(statement_text="SELECT 1"))
    if outcome.success:
        print(outcome.row_count)
"""

import asyncio
import time
from typing import Awaitable, Callable

from text2sql.config import DatabaseConfig
from text2sql.domain.base_enums import ErrorKind
from text2sql.domain.errors import ExecutionError
from text2sql.domain.execution import ExecutionOutcome, GeneratedSql
from text2sql.infrastructure.adapters.base import DatabaseAdapter
from text2sql.utils.logging import get_module_logger
from text2sql.utils.tracing import current_trace_id

logger = get_module_logger()

SleepFunc = Callable[[float], Awaitable[None]]


class SQLExecutionRepository:
    """
    Repository for SQL execution with transient-error retry.

    The retry budget here is separate from the orchestrator's correction
    budget: this layer retries the same statement, never a new one.
    """

    def __init__(
        self,
        adapter: DatabaseAdapter,
        config: DatabaseConfig,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.adapter = adapter
        self.config = config
        self._sleep = sleep

    def backoff_delay(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (1-based)."""
        return self.config.retry_backoff_seconds * (2 ** (retry_number - 1))

    async def execute(self, generated: GeneratedSql) -> ExecutionOutcome:
        """
        Execute a generated statement.

        Args:
            generated: Statement to run

        Returns:
            ExecutionOutcome with rows on success, or the classified error
        """
        trace_id = current_trace_id()
        sql = generated.statement_text
        max_executions = self.config.max_retry_attempts + 1

        logger.info(
            "Executing SQL query",
            sql_length=len(sql),
            generation_attempt=generated.generation_attempt,
            timeout=self.config.command_timeout_seconds,
            trace_id=trace_id,
        )

        start_time = time.perf_counter()

        for attempt in range(1, max_executions + 1):
            try:
                async with self.adapter.open_connection() as conn:
                    rows = await self.adapter.fetch_rows(conn, sql, self.config.command_timeout_seconds)

            except Exception as e:
                kind = self.adapter.classify_error(e)
                error = ExecutionError(str(e) or type(e).__name__, kind=kind)
                elapsed_ms = (time.perf_counter() - start_time) * 1000

                if kind == ErrorKind.TRANSIENT and attempt < max_executions:
                    delay = self.backoff_delay(attempt)
                    logger.warning(
                        "Transient execution failure, retrying",
                        attempt=attempt,
                        max_attempts=max_executions,
                        delay_seconds=delay,
                        error=error.message,
                        error_type=type(e).__name__,
                        trace_id=trace_id,
                    )
                    await self._sleep(delay)
                    continue

                logger.error(
                    "SQL execution failed",
                    kind=kind.value,
                    attempt=attempt,
                    error=error.message,
                    error_type=type(e).__name__,
                    sql=sql[:200],
                    trace_id=trace_id,
                )
                return ExecutionOutcome.failed(kind, error.message, attempts=attempt, execution_time_ms=elapsed_ms)

            execution_time_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "SQL execution successful",
                row_count=len(rows),
                attempts=attempt,
                execution_time_ms=round(execution_time_ms, 2),
                trace_id=trace_id,
            )
            return ExecutionOutcome.succeeded(rows, attempts=attempt, execution_time_ms=execution_time_ms)

        # The loop always returns; max_executions >= 1
        raise AssertionError("unreachable")
