"""
Response models for the text-to-SQL agent.

QueryResponse is the terminal artifact of the orchestration pipeline.
QueryApiResponse is its stable boundary shape (camelCase on the wire),
consumed by HTTP and command-line front ends.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .execution import CorrectionAttempt, ExecutionOutcome
from .intent import Intent
from .types import Rows


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str = Field(..., description="Health status", examples=["healthy", "degraded", "unhealthy"])
    timestamp: datetime = Field(..., description="Health check timestamp")
    version: str = Field(..., description="Application version")
    database_status: str = Field(..., description="Target database connection status")
    vector_store_status: str = Field(..., description="Similarity index status")
    llm_service_status: str = Field(..., description="LLM service status")
    embedding_service_status: str = Field(..., description="Embedding service status")


class ErrorResponse(BaseModel):
    """Response model for error responses."""

    error: str = Field(..., description="Error type or category")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details"
    )
    trace_id: Optional[str] = Field(
        default=None,
        description="Trace ID for debugging"
    )
    timestamp: datetime = Field(..., description="Error timestamp")


class QueryApiResponse(BaseModel):
    """Boundary response for a processed question."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    sql_generated: Optional[str] = None
    result: Optional[Rows] = None
    row_count: int = 0
    error_message: Optional[str] = None
    processing_steps: Optional[List[str]] = None
    answer: Optional[str] = None
    was_corrected: bool = False
    correction_attempts: int = 0


class QueryResponse(BaseModel):
    """
    Terminal artifact of one pipeline run; immutable once returned.

    Failed runs always carry a non-empty error_message and the full
    processing_steps trail.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    sql_generated: Optional[str] = None
    execution_outcome: Optional[ExecutionOutcome] = None
    answer_text: str = ""
    processing_steps: List[str] = Field(default_factory=list)
    was_corrected: bool = False
    correction_attempt_count: int = 0
    correction_history: List[CorrectionAttempt] = Field(default_factory=list)
    error_message: Optional[str] = None
    intent: Optional[Intent] = None
    trace_id: Optional[str] = None
    total_time_ms: float = 0.0

    def to_api_response(self) -> QueryApiResponse:
        outcome = self.execution_outcome
        rows = outcome.rows if outcome is not None and outcome.success else None
        return QueryApiResponse(
            success=self.success,
            sql_generated=self.sql_generated,
            result=rows,
            row_count=(outcome.row_count or 0) if outcome is not None and outcome.success else 0,
            error_message=self.error_message,
            processing_steps=list(self.processing_steps),
            answer=self.answer_text or None,
            was_corrected=self.was_corrected,
            correction_attempts=self.correction_attempt_count,
        )


class IndexSchemaStats(BaseModel):
    """Statistics from a schema indexing run."""

    collection: str = Field(..., description="Similarity index collection that was written")
    tables_indexed: int = Field(..., description="Number of table documents")
    columns_indexed: int = Field(..., description="Number of column documents")
    relationships_indexed: int = Field(..., description="Number of relationship documents")
    total_documents: int = Field(..., description="Total documents upserted")
    dimension: int = Field(default=0, description="Embedding vector length (0 when nothing was embedded)")
    collection_recreated: bool = Field(default=False, description="True when a dimension change forced recreation")


class IndexSchemaResponse(BaseModel):
    """API response for schema indexing."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    trace_id: str
    collection: str
    tables_indexed: int
    columns_indexed: int
    relationships_indexed: int
    total_documents: int


class ClearIndexResponse(BaseModel):
    """API response for clearing the similarity index."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    trace_id: str
    collection: str
    existed: bool
