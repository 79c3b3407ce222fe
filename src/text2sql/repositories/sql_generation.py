"""
SQL Generation Repository.

Handles LLM-based SQL generation:
- Prompt building with schema context and the dialect's system prompt
- LLM interaction
- Response cleaning and read-only validation
"""

from typing import List, Optional

from text2sql.config import AgentConfig
from text2sql.domain.base_enums import IntentCategory, NodeType
from text2sql.domain.errors import SQLGenerationError
from text2sql.domain.execution import GeneratedSql
from text2sql.domain.intent import Intent
from text2sql.domain.schema_documents import SchemaContext
from text2sql.infrastructure.adapters.base import DatabaseAdapter
from text2sql.infrastructure.llm_client import LLMClient
from text2sql.repositories.sql_validation import SQLValidationRepository
from text2sql.utils.llm_output import clean_sql
from text2sql.utils.logging import get_module_logger
from text2sql.utils.tracing import current_trace_id

logger = get_module_logger()


# Categories whose queries return row listings and need a LIMIT
ROW_LISTING_CATEGORIES = frozenset({IntentCategory.LIST, IntentCategory.DETAIL})


def format_schema_context(context: SchemaContext) -> str:
    """
    Render a schema context as text, one block per table.

    Table description first, then its column and relationship
    descriptions in retrieval order.
    """
    if context.is_empty:
        return "No schema context available."

    blocks: List[str] = []
    seen_ids = set()
    for table_name in context.table_names:
        lines = [f"### {table_name}"]
        for document in context.documents_for(table_name):
            if document.id in seen_ids and document.kind == NodeType.RELATIONSHIP:
                continue
            seen_ids.add(document.id)
            prefix = "" if document.kind == NodeType.TABLE else "- "
            lines.append(f"{prefix}{document.content}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def format_intent(intent: Intent) -> str:
    lines = [f"Category: {intent.category.value}"]
    if intent.target:
        lines.append(f"Target: {intent.target}")
    if intent.extracted_entities:
        lines.append(f"Entities: {', '.join(intent.extracted_entities)}")
    if intent.metrics:
        lines.append(f"Metrics: {', '.join(intent.metrics)}")
    for condition in intent.filters:
        lines.append(f"Filter: {condition.field} {condition.operator} {condition.value}")
    return "\n".join(lines)


class SQLGenerationRepository:
    """
    Repository for LLM-based SQL generation.

    Handles prompt construction and LLM interaction. Produces
    GeneratedSql with generation_attempt 0.
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

    async def generate(self, intent: Intent, context: SchemaContext) -> GeneratedSql:
        """
        Generate SQL for a classified question.

        Args:
            intent: Output of the intent analyzer
            context: Retrieved (or fallback) schema context

        Returns:
            GeneratedSql with a cleaned, read-only statement

        Raises:
            SQLGenerationError: If the model output is empty or not read-only
            LLMError: If the LLM call fails
        """
        trace_id = current_trace_id()
        prompt = self._build_prompt(intent, context)

        logger.debug(
            "Calling LLM for SQL generation",
            prompt_length=len(prompt),
            context_tables=len(context.table_names),
            trace_id=trace_id,
        )

        response = await self.llm_client.complete_with_system_prompt(self.adapter.system_prompt(), prompt)

        sql = clean_sql(response)
        if not sql:
            raise SQLGenerationError("Model returned an empty SQL statement")
        self.validator.validate(sql)

        logger.info("SQL generated", sql_length=len(sql), trace_id=trace_id)
        return GeneratedSql(statement_text=sql, generation_attempt=0)

    def _build_prompt(self, intent: Intent, context: SchemaContext) -> str:
        """Build the prompt for SQL generation."""
        rules = [
            "Use ONLY the tables and columns listed in the schema.",
            "Generate a single read-only SELECT statement.",
            "No SQL comments.",
        ]
        if intent.category in ROW_LISTING_CATEGORIES:
            rules.append(
                f"Include LIMIT {self.config.default_row_limit} unless the user asks for fewer rows; "
                f"never exceed {self.config.default_row_limit}."
            )
        if intent.category == IntentCategory.SCHEMA:
            rules.append("The question is about the database structure. " + self.adapter.catalog_hint())

        rules_section = "\n".join(f"{i}. {rule}" for i, rule in enumerate(rules, start=1))

        return f"""Generate a SQL query for the user's question.

## USER QUESTION
{intent.question}

## INTENT
{format_intent(intent)}

## SCHEMA
{format_schema_context(context)}

## RULES
{rules_section}

Return only the SQL query:"""
