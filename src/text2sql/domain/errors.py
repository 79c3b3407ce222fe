"""
Custom exception hierarchy for the text-to-SQL agent.

This module defines the exception hierarchy with:
- Consistent error codes for API responses
- HTTP status code mappings for FastAPI
- Detailed error messages for debugging

Exception Categories:
- Pipeline errors: ValidationError, IntentAnalysisError, SchemaRetrievalError,
  SQLGenerationError, SQLCorrectionError, ExecutionError, CorrectionExhaustedError
- Infrastructure errors: DatabaseError, VectorStoreError, LLMError, EmbeddingError
- Configuration errors: ConfigurationError

Usage:
    raise ValidationError("Question cannot be empty")
    raise ExecutionError("column does not exist", kind=ErrorKind.SYNTAX)
"""

from typing import Any, Dict, Optional

from .base_enums import ErrorKind


class Text2SqlError(Exception):
    """
    Base exception for all text-to-SQL errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error code (e.g., "LLM_ERROR")
        http_status: HTTP status code to return (default: 500)
        details: Optional dictionary with additional error context
    """

    error_code: str = "INTERNAL_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        http_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        if http_status:
            self.http_status = http_status

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Client Errors (4xx)
# =============================================================================


class ValidationError(Text2SqlError):
    """
    Raised when input validation fails.

    HTTP Status: 422 Unprocessable Entity

    Examples:
        - Empty or whitespace-only question
        - Empty model output where SQL was expected
    """

    error_code = "VALIDATION_ERROR"
    http_status = 422


# =============================================================================
# Configuration Errors (5xx)
# =============================================================================


class ConfigurationError(Text2SqlError):
    """
    Raised when configuration is invalid or missing.

    Examples:
        - Provider tag without a registered adapter
        - Unsupported connection string
    """

    error_code = "CONFIGURATION_ERROR"
    http_status = 500


# =============================================================================
# Pipeline Errors
# =============================================================================


class IntentAnalysisError(Text2SqlError):
    """Raised when the intent cannot be obtained or parsed from the LLM."""

    error_code = "INTENT_ANALYSIS_ERROR"
    http_status = 502


class SchemaRetrievalError(Text2SqlError):
    """
    Raised when schema context cannot be retrieved.

    The retriever degrades to an empty context instead of raising;
    this type labels the degraded step and fatal scan failures.
    """

    error_code = "SCHEMA_RETRIEVAL_ERROR"
    http_status = 503


class SQLGenerationError(ValidationError):
    """
    Raised when the LLM output cannot be used as SQL.

    HTTP Status: 422 Unprocessable Entity

    Examples:
        - Empty or whitespace-only model output
        - Statement that is not read-only
    """

    error_code = "SQL_GENERATION_ERROR"


class SQLCorrectionError(Text2SqlError):
    """Raised when the corrector cannot produce a new SQL candidate."""

    error_code = "SQL_CORRECTION_ERROR"
    http_status = 502


class ExecutionError(Text2SqlError):
    """
    Raised when SQL execution fails.

    Attributes:
        kind: Classification used to decide between retry, correction and failure
    """

    error_code = "EXECUTION_ERROR"
    http_status = 500

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
        self.kind = kind

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["kind"] = self.kind.value
        return result


class CorrectionExhaustedError(Text2SqlError):
    """Raised when the correction budget is spent without a successful execution."""

    error_code = "CORRECTION_EXHAUSTED"
    http_status = 422


# =============================================================================
# Database Errors (5xx)
# =============================================================================


class DatabaseError(Text2SqlError):
    """
    Base class for database-related errors.

    HTTP Status: 503 Service Unavailable
    """

    error_code = "DATABASE_ERROR"
    http_status = 503


class DatabaseConnectionError(DatabaseError):
    """
    Raised when database connection fails.

    Examples:
        - Connection timeout
        - Authentication failure
        - Missing database file
    """

    error_code = "DATABASE_CONNECTION_ERROR"
    http_status = 503


# =============================================================================
# Vector Store Errors (5xx)
# =============================================================================


class VectorStoreError(Text2SqlError):
    """
    Raised when similarity index operations fail.

    Examples:
        - Collection creation failure
        - Vector search failure
        - pgvector extension unavailable
    """

    error_code = "VECTOR_STORE_ERROR"
    http_status = 503


# =============================================================================
# LLM Errors (5xx)
# =============================================================================


class LLMError(Text2SqlError):
    """
    Raised when LLM operations fail.

    Examples:
        - LLM API unreachable
        - Empty response
        - Input exceeds configured size
    """

    error_code = "LLM_ERROR"
    http_status = 503


class EmbeddingError(Text2SqlError):
    """
    Raised when embedding operations fail.

    Examples:
        - Embedding API failure
        - Unexpected vector length
    """

    error_code = "EMBEDDING_ERROR"
    http_status = 503


# =============================================================================
# Service Unavailable (5xx)
# =============================================================================


class ServiceUnavailableError(Text2SqlError):
    """
    Raised when a required service is not available.

    Examples:
        - Services not built during startup
        - Client not connected
    """

    error_code = "SERVICE_UNAVAILABLE"
    http_status = 503
