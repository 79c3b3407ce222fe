"""
FastAPI dependencies for dependency injection.

Clients, the dialect adapter and the long-lived services are built once
in the application lifespan and stored on ``app.state``; these getters
hand them to route handlers.

Routes should depend on services, not infrastructure clients directly.
The optional client getters exist for the health check only.
"""

from typing import Annotated

from fastapi import Depends, Request

from ..config import Settings
from ..domain.errors import ServiceUnavailableError
from ..infrastructure.adapters.base import DatabaseAdapter
from ..infrastructure.database_client import DatabaseClient
from ..infrastructure.embedding_client import EmbeddingClient
from ..infrastructure.llm_client import LLMClient
from ..services.orchestrator import QueryOrchestrator
from ..services.schema_indexer import SchemaIndexer


def _require(request: Request, name: str, label: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise ServiceUnavailableError(f"{label} not initialized")
    return value


def get_settings(request: Request) -> Settings:
    """
    Dependency to get the settings from app state.

    Raises:
        ServiceUnavailableError: If settings are not initialized
    """
    return _require(request, "settings", "Settings")


def get_orchestrator(request: Request) -> QueryOrchestrator:
    """Dependency to get the shared QueryOrchestrator."""
    return _require(request, "orchestrator", "Query orchestrator")


def get_schema_indexer(request: Request) -> SchemaIndexer:
    """
    Dependency to get the shared SchemaIndexer.

    One instance per process so its lock serializes indexing runs.
    """
    return _require(request, "schema_indexer", "Schema indexer")


def get_adapter(request: Request) -> DatabaseAdapter:
    """Dependency to get the target database adapter."""
    return _require(request, "adapter", "Database adapter")


# Optional getters for health checks and best-effort wiring
def get_adapter_optional(request: Request) -> DatabaseAdapter | None:
    return getattr(request.app.state, "adapter", None)


def get_vector_db_client_optional(request: Request) -> DatabaseClient | None:
    return getattr(request.app.state, "vector_db_client", None)


def get_llm_client_optional(request: Request) -> LLMClient | None:
    return getattr(request.app.state, "llm_client", None)


def get_embedding_client_optional(request: Request) -> EmbeddingClient | None:
    return getattr(request.app.state, "embedding_client", None)


def get_orchestrator_optional(request: Request) -> QueryOrchestrator | None:
    return getattr(request.app.state, "orchestrator", None)


# Type aliases for cleaner route signatures
SettingsDep = Annotated[Settings, Depends(get_settings)]
OrchestratorDep = Annotated[QueryOrchestrator, Depends(get_orchestrator)]
SchemaIndexerDep = Annotated[SchemaIndexer, Depends(get_schema_indexer)]
AdapterDep = Annotated[DatabaseAdapter, Depends(get_adapter)]

OptionalAdapterDep = Annotated[DatabaseAdapter | None, Depends(get_adapter_optional)]
OptionalVectorDatabaseClientDep = Annotated[DatabaseClient | None, Depends(get_vector_db_client_optional)]
OptionalLLMClientDep = Annotated[LLMClient | None, Depends(get_llm_client_optional)]
OptionalEmbeddingClientDep = Annotated[EmbeddingClient | None, Depends(get_embedding_client_optional)]
OptionalOrchestratorDep = Annotated[QueryOrchestrator | None, Depends(get_orchestrator_optional)]
