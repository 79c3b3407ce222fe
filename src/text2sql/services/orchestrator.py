"""
Query Orchestrator - state machine that answers one question end to end.

This service is a THIN ORCHESTRATOR that coordinates:
1. PromptNormalizer - deterministic cleanup
2. IntentAnalysisRepository - LLM intent classification
3. SchemaContextRetriever - similarity search over schema documents
4. SQLGenerationRepository - LLM-based SQL generation
5. SQLExecutionRepository - read-only execution with transient retry
6. SQLCorrectionRepository - LLM-based correction of failed statements

States:
    Normalizing -> AnalyzingIntent -> RetrievingContext -> Generating
    -> Executing -> {Succeeded | Correcting -> Executing | Failed}

Every transition appends a label to processing_steps. Failures of any
stage end in Failed with success=false and a non-empty error message;
nothing is raised to the caller except cancellation.
"""

import json
import time
from typing import List, Optional

from text2sql.config import AgentConfig, RetrievalConfig
from text2sql.domain.base_enums import ErrorKind, PipelineStage
from text2sql.domain.errors import (
    CorrectionExhaustedError,
    ExecutionError,
    Text2SqlError,
)
from text2sql.domain.execution import CorrectionAttempt
from text2sql.domain.pipeline import PipelineState
from text2sql.domain.responses import QueryResponse
from text2sql.domain.schema_documents import SchemaContext, SchemaDocument, ScoredDocument
from text2sql.domain.schema_nodes import SchemaSnapshot
from text2sql.infrastructure.adapters.base import DatabaseAdapter
from text2sql.infrastructure.llm_client import LLMClient
from text2sql.repositories.intent_analysis import IntentAnalysisRepository
from text2sql.repositories.sql_correction import SQLCorrectionRepository
from text2sql.repositories.sql_execution import SQLExecutionRepository
from text2sql.repositories.sql_generation import SQLGenerationRepository
from text2sql.services.prompt_normalizer import PromptNormalizer
from text2sql.services.schema_indexer import (
    build_column_document,
    build_relationship_document,
    build_table_document,
)
from text2sql.services.schema_retriever import SchemaContextRetriever
from text2sql.utils.logging import get_module_logger
from text2sql.utils.tracing import current_trace_id, generate_trace_id, reset_trace_id, set_trace_id

logger = get_module_logger()

FULL_SCHEMA_SCAN_SOURCE = "full_schema_scan"

ANSWER_SYSTEM_PROMPT = """You explain database query results to a business user.

Rules:
- Answer in the language of the question
- Use one to three sentences
- Use only values present in the rows; never invent data
- If there are no rows, say that nothing matched"""


def build_fallback_context(
    snapshot: SchemaSnapshot,
    target: Optional[str],
    max_tables: int,
) -> SchemaContext:
    """
    Schema context built from a live scan instead of the similarity index.

    The intent's target table and its foreign-key neighbours come first,
    then the remaining tables in snapshot order. Every document scores 0.0.
    """
    ordered: List[str] = []

    def _add(name: str) -> None:
        table = snapshot.get_table(name)
        if table is not None and table.table_name not in ordered:
            ordered.append(table.table_name)

    if target:
        target_table = snapshot.get_table(target)
        if target_table is not None:
            _add(target_table.table_name)
            for neighbour in snapshot.neighbours_of(target_table.table_name):
                _add(neighbour)
    for table in snapshot.tables:
        _add(table.table_name)

    chosen = ordered[:max_tables]
    chosen_set = set(chosen)
    default_schema = snapshot.tables[0].schema_name if snapshot.tables else "public"

    documents: List[SchemaDocument] = []
    for name in chosen:
        table = snapshot.get_table(name)
        documents.append(build_table_document(table))
        documents.extend(build_column_document(table, column) for column in table.columns)
    for relationship in snapshot.relationships:
        if relationship.from_table in chosen_set or relationship.to_table in chosen_set:
            documents.append(build_relationship_document(relationship, default_schema))

    unique = {document.id: document for document in documents}
    return SchemaContext(
        documents=[ScoredDocument(document=document, score=0.0) for document in unique.values()],
        table_names=chosen,
        table_scores={name: 0.0 for name in chosen},
        source=FULL_SCHEMA_SCAN_SOURCE,
    )


class QueryOrchestrator:
    """
    Runs the text-to-SQL state machine for one question at a time.

    Holds no per-query state; every call builds its own PipelineState,
    so concurrent calls are independent.
    """

    def __init__(
        self,
        normalizer: PromptNormalizer,
        intent_repository: IntentAnalysisRepository,
        retriever: SchemaContextRetriever,
        generation_repository: SQLGenerationRepository,
        execution_repository: SQLExecutionRepository,
        correction_repository: SQLCorrectionRepository,
        adapter: DatabaseAdapter,
        llm_client: LLMClient,
        config: AgentConfig,
        retrieval_config: RetrievalConfig,
    ):
        self.normalizer = normalizer
        self.intent_repo = intent_repository
        self.retriever = retriever
        self.generation_repo = generation_repository
        self.execution_repo = execution_repository
        self.correction_repo = correction_repository
        self.adapter = adapter
        self.llm_client = llm_client
        self.config = config
        self.retrieval_config = retrieval_config

        # Table names of the latest indexed or scanned schema, hinted to intent analysis
        self.known_tables: List[str] = []

        logger.info(
            "QueryOrchestrator initialized",
            max_self_correction_attempts=config.max_self_correction_attempts,
            enable_sql_explanation=config.enable_sql_explanation,
            enable_full_schema_fallback=config.enable_full_schema_fallback,
            correctable_error_kinds=[k.value for k in config.correctable_error_kinds],
        )

    def remember_schema(self, snapshot: SchemaSnapshot) -> None:
        """Record the table names of a freshly scanned schema."""
        self.known_tables = [table.table_name for table in snapshot.tables]

    async def process_query(self, question: str, conversation_id: Optional[str] = None) -> QueryResponse:
        """
        Answer a natural-language question.

        Args:
            question: Raw question text
            conversation_id: Optional id echoed into logs

        Returns:
            QueryResponse; success=false with error_message on any failure
        """
        token = set_trace_id(generate_trace_id()) if current_trace_id() is None else None
        try:
            return await self._run(question, conversation_id)
        finally:
            if token is not None:
                reset_trace_id(token)

    async def _run(self, question: str, conversation_id: Optional[str]) -> QueryResponse:
        trace_id = current_trace_id()
        start_time = time.perf_counter()
        state = PipelineState(question=question, conversation_id=conversation_id)

        logger.info(
            "Starting query pipeline",
            question_length=len(question or ""),
            conversation_id=conversation_id,
            trace_id=trace_id,
        )

        try:
            # Step 1: Normalizing
            self._step_normalize(state)

            # Step 2: AnalyzingIntent
            await self._step_analyze_intent(state)
            if state.intent.needs_clarification:
                message = state.intent.clarification_question or "The question is ambiguous, please clarify it"
                self._fail(state, message, label="clarification needed")
                return self._build_response(state, start_time)

            # Step 3: RetrievingContext
            await self._step_retrieve_context(state)

            # Step 4: Generating
            await self._step_generate(state)

            # Step 5: Executing, looping through Correcting
            await self._step_execute_with_correction(state)

            state.stage = PipelineStage.SUCCEEDED
            state.processing_steps.append(f"Succeeded: {state.outcome.row_count} rows")

            # Optional: phrase the answer
            await self._step_answer(state)

        except Text2SqlError as e:
            logger.error(
                "Query pipeline failed",
                error=e.message,
                error_type=type(e).__name__,
                stage=state.stage.value,
                trace_id=trace_id,
            )
            self._fail(state, e.message)

        except Exception as e:
            logger.error(
                "Query pipeline failed unexpectedly",
                error=str(e),
                error_type=type(e).__name__,
                stage=state.stage.value,
                trace_id=trace_id,
                exc_info=True,
            )
            self._fail(state, f"Unexpected error: {str(e) or type(e).__name__}")

        return self._build_response(state, start_time)

    # =========================================================================
    # Pipeline Steps (thin - delegate to repositories)
    # =========================================================================

    def _step_normalize(self, state: PipelineState) -> None:
        """Step 1: Deterministic prompt cleanup."""
        self._enter(state, PipelineStage.NORMALIZING)
        state.prompt = self.normalizer.normalize(state.question)
        state.processing_steps[-1] += f": language={state.prompt.language_tag}"

    async def _step_analyze_intent(self, state: PipelineState) -> None:
        """Step 2: Classify the question."""
        self._enter(state, PipelineStage.ANALYZING_INTENT)
        logger.info("Step 2: Intent analysis", trace_id=current_trace_id())

        state.intent = await self.intent_repo.analyze(state.prompt, available_tables=self.known_tables or None)

        detail = state.intent.category.value
        if state.intent.target:
            detail += f" (target={state.intent.target})"
        state.processing_steps[-1] += f": {detail}"

    async def _step_retrieve_context(self, state: PipelineState) -> None:
        """Step 3: Similarity retrieval, with a live-schema fallback."""
        trace_id = current_trace_id()
        self._enter(state, PipelineStage.RETRIEVING_CONTEXT)
        logger.info("Step 3: Schema retrieval", trace_id=trace_id)

        context = await self.retriever.retrieve(state.prompt.normalized_text)
        state.context = context

        if context.degraded:
            state.processing_steps.append(f"SchemaRetrievalError: {context.error_message}")
        else:
            state.processing_steps[-1] += f": {len(context.table_names)} tables"

        if context.is_empty and self.config.enable_full_schema_fallback:
            await self._step_fallback_scan(state)

    async def _step_fallback_scan(self, state: PipelineState) -> None:
        trace_id = current_trace_id()
        logger.info("Retrieval yielded no context, scanning live schema", trace_id=trace_id)

        try:
            async with self.adapter.open_connection() as conn:
                snapshot = await self.adapter.get_schema(conn)
        except Exception as e:
            message = getattr(e, "message", None) or str(e) or type(e).__name__
            logger.warning(
                "Full schema scan failed, continuing without schema context",
                error=message,
                error_type=type(e).__name__,
                trace_id=trace_id,
            )
            state.processing_steps.append(f"FallbackSchemaScanFailed: {message}")
            return

        self.remember_schema(snapshot)
        target = state.intent.target if state.intent else None
        state.context = build_fallback_context(snapshot, target, self.retrieval_config.max_context_tables)
        state.processing_steps.append(f"FallbackSchemaScan: {len(state.context.table_names)} tables")

        logger.info(
            "Fallback schema context built",
            tables=state.context.table_names,
            documents=len(state.context.documents),
            trace_id=trace_id,
        )

    async def _step_generate(self, state: PipelineState) -> None:
        """Step 4: Initial SQL candidate."""
        self._enter(state, PipelineStage.GENERATING)
        logger.info("Step 4: SQL generation", trace_id=current_trace_id())

        state.current_sql = await self.generation_repo.generate(state.intent, state.context)

    async def _step_execute_with_correction(self, state: PipelineState) -> None:
        """
        Step 5: Execute, correcting on failure until success or budget.

        The executor has already retried transient failures; anything that
        reaches this loop needs a different statement or is final.
        """
        trace_id = current_trace_id()
        max_attempts = self.config.max_self_correction_attempts

        while True:
            self._enter(state, PipelineStage.EXECUTING)
            state.processing_steps[-1] += f" (attempt {state.correction_attempt_count + 1})"
            state.outcome = await self.execution_repo.execute(state.current_sql)

            if state.outcome.success:
                return

            kind = state.outcome.error_kind or ErrorKind.UNKNOWN
            error_message = state.outcome.error_message or "Execution failed"

            if kind not in self.config.correctable_error_kinds:
                raise ExecutionError(f"Execution failed ({kind.value}): {error_message}", kind=kind)

            if state.correction_attempt_count >= max_attempts:
                raise CorrectionExhaustedError(
                    f"Correction budget exhausted after {state.correction_attempt_count} attempts: {error_message}",
                    details={"last_error_kind": kind.value, "last_sql": state.current_sql.statement_text},
                )

            attempt_number = state.correction_attempt_count + 1
            self._enter(state, PipelineStage.CORRECTING)
            state.processing_steps[-1] += f" (attempt {attempt_number}/{max_attempts}): {kind.value}"
            logger.info(
                "Step 5: Self-correction",
                attempt_number=attempt_number,
                max_attempts=max_attempts,
                error_kind=kind.value,
                trace_id=trace_id,
            )

            prior_sql = state.current_sql.statement_text
            state.current_sql = await self.correction_repo.correct(
                prior_sql,
                error_message,
                state.context,
                error_kind=kind,
                attempt_number=attempt_number,
            )
            state.correction_attempts.append(
                CorrectionAttempt(
                    attempt_number=attempt_number,
                    prior_sql=prior_sql,
                    prior_error=error_message,
                    prior_error_kind=kind,
                    corrected_sql=state.current_sql.statement_text,
                )
            )

    async def _step_answer(self, state: PipelineState) -> None:
        """Optional: phrase a short answer from the rows. Never fails the query."""
        if not self.config.enable_sql_explanation:
            return

        trace_id = current_trace_id()
        rows = state.outcome.rows or []
        shown = rows[:self.config.max_answer_rows]
        prompt = (
            f"## QUESTION\n{state.prompt.normalized_text}\n\n"
            f"## SQL\n{state.current_sql.statement_text}\n\n"
            f"## ROWS ({len(shown)} of {len(rows)})\n"
            f"{json.dumps(shown, ensure_ascii=False, default=str)}\n\n"
            "Answer:"
        )

        try:
            answer = await self.llm_client.complete_with_system_prompt(ANSWER_SYSTEM_PROMPT, prompt)
        except Text2SqlError as e:
            logger.warning("Answer phrasing skipped", error=e.message, trace_id=trace_id)
            state.processing_steps.append(f"AnswerSkipped: {e.message}")
            return

        state.answer_text = answer.strip()
        state.processing_steps.append("AnswerPhrased")

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @staticmethod
    def _enter(state: PipelineState, stage: PipelineStage) -> None:
        state.stage = stage
        state.processing_steps.append(stage.value)

    @staticmethod
    def _fail(state: PipelineState, message: str, label: Optional[str] = None) -> None:
        state.error_stage = state.stage
        state.error_message = message or "Query failed"
        state.stage = PipelineStage.FAILED
        state.processing_steps.append(f"Failed: {label or state.error_message}")

    def _build_response(self, state: PipelineState, start_time: float) -> QueryResponse:
        total_time_ms = (time.perf_counter() - start_time) * 1000
        success = state.stage == PipelineStage.SUCCEEDED

        logger.info(
            "Query pipeline finished",
            success=success,
            stage=state.stage.value,
            error_stage=state.error_stage.value if state.error_stage else None,
            correction_attempts=state.correction_attempt_count,
            total_time_ms=round(total_time_ms, 2),
            trace_id=current_trace_id(),
        )

        return QueryResponse(
            success=success,
            sql_generated=state.current_sql.statement_text if state.current_sql else None,
            execution_outcome=state.outcome,
            answer_text=state.answer_text if success else "",
            processing_steps=list(state.processing_steps),
            was_corrected=state.correction_attempt_count > 0,
            correction_attempt_count=state.correction_attempt_count,
            correction_history=list(state.correction_attempts),
            error_message=None if success else state.error_message,
            intent=state.intent,
            trace_id=current_trace_id(),
            total_time_ms=total_time_ms,
        )
