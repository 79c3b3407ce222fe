"""
Domain package for the text-to-SQL agent.

This package contains all domain models, entities, and value objects
used throughout the application for type safety and validation.
"""

from .base_enums import ErrorKind, IntentCategory, NodeType, PipelineStage
from .schema_nodes import ColumnNode, RelationshipNode, SchemaSnapshot, TableNode
from .schema_documents import EmbeddingPoint, SchemaContext, SchemaDocument, ScoredDocument
from .intent import FilterCondition, Intent, NormalizedPrompt
from .execution import CorrectionAttempt, ExecutionOutcome, GeneratedSql
from .requests import QueryRequest
from .responses import (
    ClearIndexResponse,
    ErrorResponse,
    HealthResponse,
    IndexSchemaResponse,
    IndexSchemaStats,
    QueryApiResponse,
    QueryResponse,
)
from .pipeline import PipelineState

__all__ = [
    # Enums
    "ErrorKind",
    "IntentCategory",
    "NodeType",
    "PipelineStage",

    # Schema snapshot
    "ColumnNode",
    "RelationshipNode",
    "SchemaSnapshot",
    "TableNode",

    # Index documents
    "EmbeddingPoint",
    "SchemaContext",
    "SchemaDocument",
    "ScoredDocument",

    # Question side
    "FilterCondition",
    "Intent",
    "NormalizedPrompt",

    # SQL side
    "CorrectionAttempt",
    "ExecutionOutcome",
    "GeneratedSql",

    # Requests
    "QueryRequest",

    # Responses
    "ClearIndexResponse",
    "ErrorResponse",
    "HealthResponse",
    "IndexSchemaResponse",
    "IndexSchemaStats",
    "QueryApiResponse",
    "QueryResponse",

    # Pipeline
    "PipelineState",
]
