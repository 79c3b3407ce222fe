from enum import Enum


class NodeType(str, Enum):
    """Kind of a schema document stored in the similarity index."""
    TABLE = "table"
    COLUMN = "column"
    RELATIONSHIP = "relationship"


# Tie-break order used when two tables share the same best score
NODE_TYPE_RANK = {
    NodeType.TABLE: 0,
    NodeType.COLUMN: 1,
    NodeType.RELATIONSHIP: 2,
}


class IntentCategory(str, Enum):
    LIST = "LIST"
    COUNT = "COUNT"
    AGGREGATE = "AGGREGATE"
    DETAIL = "DETAIL"
    SCHEMA = "SCHEMA"


class ErrorKind(str, Enum):
    """Classification of a failed SQL execution."""
    TRANSIENT = "transient"
    SYNTAX = "syntax"
    PERMISSION = "permission"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class PipelineStage(str, Enum):
    """States of the query orchestration state machine."""
    NORMALIZING = "Normalizing"
    ANALYZING_INTENT = "AnalyzingIntent"
    RETRIEVING_CONTEXT = "RetrievingContext"
    GENERATING = "Generating"
    EXECUTING = "Executing"
    CORRECTING = "Correcting"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


TERMINAL_STAGES = frozenset({PipelineStage.SUCCEEDED, PipelineStage.FAILED})
