"""
Main FastAPI application for the text-to-SQL agent.

This module wires clients, the dialect adapter, repositories and
services once at startup and exposes the query and indexing endpoints.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, Union

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.dependencies import (
    AdapterDep,
    OptionalAdapterDep,
    OptionalEmbeddingClientDep,
    OptionalLLMClientDep,
    OptionalOrchestratorDep,
    OptionalVectorDatabaseClientDep,
    OrchestratorDep,
    SchemaIndexerDep,
    SettingsDep,
)
from .api.middleware import register_exception_handlers, register_middleware
from .config import Settings, get_settings
from .domain.errors import DatabaseError, Text2SqlError
from .domain.requests import QueryRequest
from .domain.responses import (
    ClearIndexResponse,
    HealthResponse,
    IndexSchemaResponse,
    QueryApiResponse,
)
from .infrastructure.adapters import create_adapter
from .infrastructure.database_client import DatabaseClient
from .infrastructure.embedding_client import EmbeddingClient
from .infrastructure.llm_client import LLMClient
from .repositories.intent_analysis import IntentAnalysisRepository
from .repositories.sql_correction import SQLCorrectionRepository
from .repositories.sql_execution import SQLExecutionRepository
from .repositories.sql_generation import SQLGenerationRepository
from .repositories.sql_validation import SQLValidationRepository
from .repositories.vector_repository import VectorRepository, build_collection_name
from .services.orchestrator import QueryOrchestrator
from .services.prompt_normalizer import PromptNormalizer
from .services.schema_indexer import SchemaIndexer
from .services.schema_retriever import SchemaContextRetriever
from .utils.logging import configure_logging, get_module_logger
from .utils.tracing import get_trace_id

API_VERSION = "0.1.0"

logger = get_module_logger()


async def _connect(label: str, client) -> None:
    """Connect a client; failures are logged and reported by /health."""
    try:
        await client.connect()
        logger.info(f"{label} connected successfully")
    except Text2SqlError as e:
        logger.error(f"Failed to connect {label}", error=e.message, error_type=type(e).__name__)


def build_orchestrator(
    settings: Settings,
    llm_client: LLMClient,
    embedding_client: EmbeddingClient,
    adapter,
    vector_repository: VectorRepository,
) -> QueryOrchestrator:
    """Assemble the query pipeline from shared clients."""
    validator = SQLValidationRepository()
    return QueryOrchestrator(
        normalizer=PromptNormalizer(),
        intent_repository=IntentAnalysisRepository(llm_client),
        retriever=SchemaContextRetriever(embedding_client, vector_repository, settings.retrieval),
        generation_repository=SQLGenerationRepository(llm_client, adapter, settings.agent, validator),
        execution_repository=SQLExecutionRepository(adapter, settings.database),
        correction_repository=SQLCorrectionRepository(llm_client, adapter, settings.agent, validator),
        adapter=adapter,
        llm_client=llm_client,
        config=settings.agent,
        retrieval_config=settings.retrieval,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.app.log_level)
    app.state.settings = settings

    logger.info(
        "Starting text-to-SQL API server",
        version=API_VERSION,
        database_provider=settings.database.provider.value,
        llm_provider=settings.llm.provider.value,
    )

    llm_client = LLMClient(settings.llm)
    await _connect("LLM client", llm_client)

    embedding_client = EmbeddingClient(settings.embedding)
    await _connect("Embedding client", embedding_client)

    # Unknown provider tags fail startup here
    adapter = create_adapter(settings.database)
    await _connect("Target database", adapter)

    vector_db_client = DatabaseClient(
        dsn=settings.vector_store.database_url,
        name="vector_store",
        min_size=settings.vector_store.connection_pool_min_size,
        max_size=settings.vector_store.connection_pool_max_size,
        connection_timeout_seconds=settings.database.connection_timeout_seconds,
    )
    await _connect("Vector store", vector_db_client)

    vector_repository = VectorRepository(
        vector_db_client,
        settings.vector_store,
        build_collection_name(settings.vector_store.collection_name, adapter.database_name),
    )

    app.state.llm_client = llm_client
    app.state.embedding_client = embedding_client
    app.state.adapter = adapter
    app.state.vector_db_client = vector_db_client
    app.state.schema_indexer = SchemaIndexer(embedding_client, vector_repository, settings.indexing)
    app.state.orchestrator = build_orchestrator(
        settings, llm_client, embedding_client, adapter, vector_repository
    )

    yield

    logger.info("Shutting down text-to-SQL API server")
    await vector_db_client.close()
    await adapter.close()
    await embedding_client.close()
    await llm_client.close()
    logger.info("All clients closed")


app = FastAPI(
    title="Text-to-SQL Agent API",
    description="Answers natural-language questions by generating, running and self-correcting SQL",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_middleware(app)
register_exception_handlers(app)


@app.get("/", tags=["Root"])
async def root(settings: SettingsDep) -> Dict[str, Union[str, None]]:
    """Basic API information."""
    trace_id = get_trace_id()
    logger.info("Root endpoint accessed", trace_id=trace_id)

    return {
        "message": "Text-to-SQL Agent API",
        "version": API_VERSION,
        "trace_id": trace_id,
        "database_provider": settings.database.provider.value,
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health(
    settings: SettingsDep,
    adapter: OptionalAdapterDep,
    vector_db_client: OptionalVectorDatabaseClientDep,
    llm_client: OptionalLLMClientDep,
    embedding_client: OptionalEmbeddingClientDep,
) -> HealthResponse:
    """
    Per-dependency health.

    status is "healthy" only when every dependency is healthy,
    otherwise "degraded".
    """
    trace_id = get_trace_id()
    logger.info("Health check endpoint accessed", trace_id=trace_id)

    database_status = "not_configured"
    if adapter is not None:
        reachable = await adapter.test_connection(settings.database.connection_string)
        database_status = "healthy" if reachable else "unhealthy"

    vector_store_status = "not_configured"
    if vector_db_client is not None:
        vector_health = await vector_db_client.health_check()
        vector_store_status = vector_health.get("status", "unknown")

    llm_status = "not_configured"
    if llm_client is not None:
        llm_status = "healthy" if llm_client.is_connected() else "unhealthy"

    embedding_status = "not_configured"
    if embedding_client is not None:
        embedding_status = "healthy" if embedding_client.is_connected() else "unhealthy"

    statuses = (database_status, vector_store_status, llm_status, embedding_status)
    overall_status = "healthy" if all(s == "healthy" for s in statuses) else "degraded"

    return HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=API_VERSION,
        database_status=database_status,
        vector_store_status=vector_store_status,
        llm_service_status=llm_status,
        embedding_service_status=embedding_status,
    )


# -------------------------
# Query Endpoint
# -------------------------

@app.post(
    "/api/v1/query",
    response_model=QueryApiResponse,
    response_model_by_alias=True,
    tags=["Query"],
)
async def query(request: QueryRequest, orchestrator: OrchestratorDep) -> QueryApiResponse:
    """
    Answer a natural-language question.

    Pipeline failures (no usable SQL, correction budget spent, ...) are
    reported with HTTP 200 and ``success=false``; the processingSteps
    trail shows which stage failed.
    """
    trace_id = get_trace_id()
    logger.info(
        "Query requested",
        question_length=len(request.question),
        conversation_id=request.conversation_id,
        trace_id=trace_id,
    )

    response = await orchestrator.process_query(request.question, request.conversation_id)

    logger.info(
        "Query completed",
        success=response.success,
        was_corrected=response.was_corrected,
        correction_attempts=response.correction_attempt_count,
        trace_id=trace_id,
    )
    return response.to_api_response()


# -------------------------
# Schema Index Endpoints
# -------------------------

@app.post(
    "/api/v1/schema/index",
    response_model=IndexSchemaResponse,
    response_model_by_alias=True,
    tags=["Schema Index"],
)
async def index_schema(
    adapter: AdapterDep,
    indexer: SchemaIndexerDep,
    orchestrator: OptionalOrchestratorDep,
) -> IndexSchemaResponse:
    """
    Scan the target database schema and (re)index it.

    Re-indexing an unchanged schema rewrites the same document ids.
    """
    trace_id = get_trace_id()
    logger.info("Schema indexing requested", database=adapter.database_name, trace_id=trace_id)

    try:
        async with adapter.open_connection() as conn:
            snapshot = await adapter.get_schema(conn)
    except Text2SqlError:
        raise
    except Exception as e:
        raise DatabaseError(f"Schema scan failed: {str(e) or type(e).__name__}") from e

    stats = await indexer.index_schema(snapshot)
    if orchestrator is not None:
        orchestrator.remember_schema(snapshot)

    return IndexSchemaResponse(
        trace_id=trace_id,
        collection=stats.collection,
        tables_indexed=stats.tables_indexed,
        columns_indexed=stats.columns_indexed,
        relationships_indexed=stats.relationships_indexed,
        total_documents=stats.total_documents,
    )


@app.delete(
    "/api/v1/schema/index",
    response_model=ClearIndexResponse,
    response_model_by_alias=True,
    tags=["Schema Index"],
)
async def clear_index(indexer: SchemaIndexerDep) -> ClearIndexResponse:
    """Drop the similarity index collection; safe when it does not exist."""
    trace_id = get_trace_id()
    existed = await indexer.clear_index()

    return ClearIndexResponse(
        trace_id=trace_id,
        collection=indexer.vector_repo.collection_name,
        existed=existed,
    )
