"""
SQL Correction Repository.

Turns a failed execution into a new SQL candidate:
- Correction prompt with the failed SQL, the raw error and the schema context
- Similar-column hints for misspelled identifiers
- LLM interaction with the dialect's correction system prompt
- Response cleaning and read-only validation

Performs no execution itself.
"""

import difflib
import re
from typing import List, Optional

from text2sql.config import AgentConfig
from text2sql.domain.base_enums import ErrorKind
from text2sql.domain.errors import LLMError, SQLCorrectionError
from text2sql.domain.execution import GeneratedSql
from text2sql.domain.schema_documents import SchemaContext
from text2sql.infrastructure.adapters.base import DatabaseAdapter
from text2sql.infrastructure.llm_client import LLMClient
from text2sql.repositories.sql_generation import format_schema_context
from text2sql.repositories.sql_validation import SQLValidationRepository
from text2sql.utils.llm_output import clean_sql
from text2sql.utils.logging import get_module_logger
from text2sql.utils.tracing import current_trace_id

logger = get_module_logger()

_IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)?")

# Minimum difflib ratio for a column to count as "similar"
SIMILARITY_CUTOFF = 0.6


def suggest_similar_columns(
    sql: str,
    error_message: str,
    known_columns: List[str],
    limit: int,
) -> List[str]:
    """
    Known ``table.column`` names that resemble unknown identifiers.

    Identifiers are taken from the failed statement and the error text;
    exact matches are skipped since they are not the problem.
    """
    if limit <= 0 or not known_columns:
        return []

    bare_to_qualified = {}
    for qualified in known_columns:
        bare_to_qualified.setdefault(qualified.split(".")[-1].lower(), []).append(qualified)
    known_lower = {c.lower() for c in known_columns} | set(bare_to_qualified)

    suggestions: List[str] = []
    candidates = _IDENTIFIER_PATTERN.findall(f"{sql} {error_message}")
    for identifier in dict.fromkeys(candidates):
        lowered = identifier.lower()
        if lowered in known_lower:
            continue
        bare = lowered.split(".")[-1]
        for match in difflib.get_close_matches(bare, list(bare_to_qualified), n=limit, cutoff=SIMILARITY_CUTOFF):
            for qualified in bare_to_qualified[match]:
                if qualified not in suggestions:
                    suggestions.append(qualified)
        if len(suggestions) >= limit:
            break

    return suggestions[:limit]


class SQLCorrectionRepository:
    """
    Repository for LLM-based SQL correction.

    Each call produces a new GeneratedSql whose generation_attempt is the
    correction attempt number.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        adapter: DatabaseAdapter,
        config: AgentConfig,
        validator: Optional[SQLValidationRepository] = None,
    ):
        self.llm_client = llm_client
        self.adapter = adapter
        self.config = config
        self.validator = validator or SQLValidationRepository()

    async def correct(
        self,
        prior_sql: str,
        prior_error: str,
        context: SchemaContext,
        error_kind: Optional[ErrorKind] = None,
        attempt_number: int = 1,
    ) -> GeneratedSql:
        """
        Produce a corrected SQL candidate.

        Args:
            prior_sql: Statement that failed
            prior_error: Raw error text from the database
            context: Schema context used for generation
            error_kind: Classified failure kind, if known
            attempt_number: 1-based correction attempt

        Returns:
            GeneratedSql with generation_attempt = attempt_number

        Raises:
            SQLCorrectionError: If the LLM call fails or returns nothing
            SQLGenerationError: If the corrected statement is not read-only
        """
        trace_id = current_trace_id()
        suggestions = suggest_similar_columns(
            prior_sql,
            prior_error,
            context.column_names(),
            self.config.similar_column_suggestions,
        )
        prompt = self._build_prompt(prior_sql, prior_error, context, error_kind, suggestions)

        logger.info(
            "Requesting SQL correction",
            attempt_number=attempt_number,
            error_kind=error_kind.value if error_kind else None,
            suggestions=suggestions,
            trace_id=trace_id,
        )

        try:
            response = await self.llm_client.complete_with_system_prompt(
                self.adapter.correction_system_prompt(), prompt
            )
        except LLMError as e:
            raise SQLCorrectionError(f"SQL correction failed: {e.message}") from e

        sql = clean_sql(response)
        if not sql:
            raise SQLCorrectionError("Model returned an empty corrected statement")
        self.validator.validate(sql)

        logger.info("SQL corrected", attempt_number=attempt_number, sql_length=len(sql), trace_id=trace_id)
        return GeneratedSql(statement_text=sql, generation_attempt=attempt_number)

    def _build_prompt(
        self,
        prior_sql: str,
        prior_error: str,
        context: SchemaContext,
        error_kind: Optional[ErrorKind],
        suggestions: List[str],
    ) -> str:
        sections = [
            "Fix the failed SQL query.",
            f"## FAILED SQL\n{prior_sql}",
            f"## ERROR\n{prior_error}",
        ]
        if error_kind is not None:
            sections.append(f"## ERROR KIND\n{error_kind.value}")
        if suggestions:
            sections.append("## SIMILAR COLUMNS\n" + "\n".join(f"- {name}" for name in suggestions))
        sections.append(f"## SCHEMA\n{format_schema_context(context)}")
        sections.append("Return only the corrected SQL query:")
        return "\n\n".join(sections)
