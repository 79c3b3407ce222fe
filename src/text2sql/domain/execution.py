"""
SQL-side domain models: generated statements, execution outcomes and
correction attempts.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .base_enums import ErrorKind
from .types import Rows


class GeneratedSql(BaseModel):
    """A SQL candidate produced by the generator (attempt 0) or the corrector (1..n)."""

    model_config = ConfigDict(frozen=True)

    statement_text: str = Field(..., min_length=1)
    generation_attempt: int = Field(default=0, ge=0)


class ExecutionOutcome(BaseModel):
    """Result of running one GeneratedSql; never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    success: bool
    rows: Optional[Rows] = None
    row_count: Optional[int] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    attempts: int = Field(default=1, ge=1, description="Executions including transient retries")
    execution_time_ms: float = 0.0

    @classmethod
    def succeeded(cls, rows: Rows, attempts: int = 1, execution_time_ms: float = 0.0) -> "ExecutionOutcome":
        return cls(
            success=True,
            rows=rows,
            row_count=len(rows),
            attempts=attempts,
            execution_time_ms=execution_time_ms,
        )

    @classmethod
    def failed(
        cls,
        kind: ErrorKind,
        message: str,
        attempts: int = 1,
        execution_time_ms: float = 0.0,
    ) -> "ExecutionOutcome":
        return cls(
            success=False,
            error_kind=kind,
            error_message=message,
            attempts=attempts,
            execution_time_ms=execution_time_ms,
        )


class CorrectionAttempt(BaseModel):
    """One correction cycle: the failing statement, its error and the replacement."""

    model_config = ConfigDict(frozen=True)

    attempt_number: int = Field(..., ge=1)
    prior_sql: str
    prior_error: str
    prior_error_kind: Optional[ErrorKind] = None
    corrected_sql: str
