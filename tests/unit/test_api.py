"""
Unit tests for the HTTP layer.

httpx's ASGITransport does not run the application lifespan, so each
test places its collaborators on ``app.state`` directly: the real
orchestrator and indexer over the SQLite shop database, with faked
LLM, embedding and similarity-index clients.
"""

from types import SimpleNamespace

import httpx
import pytest

from text2sql.config import SchemaIndexingConfig
from text2sql.config_constants import DatabaseProvider
from text2sql.main import API_VERSION, app
from text2sql.services.schema_indexer import SchemaIndexer

from fakes import (
    TABLE_COUNT_SQL,
    FakeEmbeddingClient,
    FakeLLMClient,
    FakeVectorRepository,
    build_orchestrator,
    no_sleep,
)


class FakeVectorDatabaseClient:
    def __init__(self, status: str = "healthy"):
        self.status = status

    async def health_check(self):
        return {"status": self.status, "connected": self.status == "healthy"}


@pytest.fixture
def state(monkeypatch, sqlite_adapter, sqlite_config):
    """Populate app.state; attributes are removed again after the test."""

    def _set(**values):
        for name, value in values.items():
            monkeypatch.setattr(app.state, name, value, raising=False)

    settings = SimpleNamespace(database=sqlite_config)
    _set(settings=settings, adapter=sqlite_adapter)
    return _set


@pytest.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


class TestRoot:
    """Tests for GET /."""

    async def test_root(self, state, client):
        response = await client.get("/")

        assert response.status_code == 200
        body = response.json()
        assert body["version"] == API_VERSION
        assert body["database_provider"] == DatabaseProvider.SQLITE.value
        assert body["trace_id"] == response.headers["X-Trace-ID"]

    async def test_trace_id_header_echoed(self, state, client):
        response = await client.get("/", headers={"X-Trace-ID": "trace-123"})

        assert response.headers["X-Trace-ID"] == "trace-123"
        assert response.json()["trace_id"] == "trace-123"
        assert "X-Process-Time" in response.headers


class TestHealth:
    """Tests for GET /health."""

    async def test_all_healthy(self, state, client):
        state(
            vector_db_client=FakeVectorDatabaseClient(),
            llm_client=FakeLLMClient(),
            embedding_client=FakeEmbeddingClient(),
        )

        body = (await client.get("/health")).json()

        assert body["status"] == "healthy"
        assert body["database_status"] == "healthy"
        assert body["vector_store_status"] == "healthy"
        assert body["version"] == API_VERSION

    async def test_degraded_when_one_dependency_down(self, state, client):
        state(
            vector_db_client=FakeVectorDatabaseClient(status="unhealthy"),
            llm_client=FakeLLMClient(),
            embedding_client=FakeEmbeddingClient(fail=True),
        )

        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["vector_store_status"] == "unhealthy"
        assert body["embedding_service_status"] == "unhealthy"
        assert body["llm_service_status"] == "healthy"

    async def test_missing_clients_not_configured(self, state, client):
        body = (await client.get("/health")).json()

        assert body["status"] == "degraded"
        assert body["llm_service_status"] == "not_configured"


class TestQueryEndpoint:
    """Tests for POST /api/v1/query."""

    async def test_successful_query_camel_case(self, state, client, sqlite_adapter, sqlite_config):
        llm = FakeLLMClient(['{"category": "SCHEMA"}', TABLE_COUNT_SQL, "Database có 3 bảng."])
        state(orchestrator=build_orchestrator(sqlite_adapter, sqlite_config, llm))

        response = await client.post("/api/v1/query", json={"question": "Có bao nhiêu bảng trong database?"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["sqlGenerated"] == TABLE_COUNT_SQL
        assert body["result"] == [{"table_count": 3}]
        assert body["rowCount"] == 1
        assert body["answer"] == "Database có 3 bảng."
        assert body["wasCorrected"] is False
        assert body["correctionAttempts"] == 0
        assert body["processingSteps"][0] == "Normalizing: language=vi"

    async def test_pipeline_failure_is_200(self, state, client, sqlite_adapter, sqlite_config):
        llm = FakeLLMClient(['{"category": "COUNT"}', "SELECT COUNT(nope) FROM orders"])
        state(orchestrator=build_orchestrator(
            sqlite_adapter, sqlite_config, llm, max_self_correction_attempts=0
        ))

        response = await client.post("/api/v1/query", json={"question": "how many orders", "conversationId": "c-1"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["errorMessage"]
        assert body["rowCount"] == 0
        assert body["processingSteps"][-1].startswith("Failed:")

    @pytest.mark.parametrize("payload", [{"question": ""}, {}, {"question": "x" * 4001}])
    async def test_invalid_body(self, state, client, payload):
        state(orchestrator=object())

        response = await client.post("/api/v1/query", json=payload)

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["details"]["errors"][0]["field"].startswith("body")

    async def test_orchestrator_missing(self, state, client):
        response = await client.post("/api/v1/query", json={"question": "how many orders"})

        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "service_unavailable"
        assert body["message"] == "Query orchestrator not initialized"
        assert body["trace_id"] == response.headers["X-Trace-ID"]


class TestSchemaIndexEndpoints:
    """Tests for POST and DELETE /api/v1/schema/index."""

    @pytest.fixture
    def vectors(self, state):
        vectors = FakeVectorRepository(collection_name="schema_embeddings_shop")
        indexer = SchemaIndexer(
            FakeEmbeddingClient(), vectors, SchemaIndexingConfig(batch_size=50, inter_call_delay_seconds=0.01), sleep=no_sleep
        )
        state(schema_indexer=indexer)
        return vectors

    async def test_index_schema(self, client, vectors):
        response = await client.post("/api/v1/schema/index")

        assert response.status_code == 200
        body = response.json()
        assert body["collection"] == "schema_embeddings_shop"
        assert body["tablesIndexed"] == 3
        assert body["columnsIndexed"] == 12
        assert body["relationshipsIndexed"] == 2
        assert body["totalDocuments"] == 17
        assert body["traceId"] == response.headers["X-Trace-ID"]
        assert len(vectors.points) == 17

    async def test_index_refreshes_known_tables(self, state, client, vectors, sqlite_adapter, sqlite_config):
        orchestrator = build_orchestrator(sqlite_adapter, sqlite_config, FakeLLMClient())
        state(orchestrator=orchestrator)

        response = await client.post("/api/v1/schema/index")

        assert response.status_code == 200
        assert orchestrator.known_tables == ["customers", "orders", "products"]

    async def test_index_failure_maps_to_error_status(self, state, client):
        indexer = SchemaIndexer(
            FakeEmbeddingClient(fail=True), FakeVectorRepository(), SchemaIndexingConfig(), sleep=no_sleep
        )
        state(schema_indexer=indexer)

        response = await client.post("/api/v1/schema/index")

        assert response.status_code == 503
        assert response.json()["message"] == "Embedding service unreachable"

    async def test_clear_index(self, client, vectors):
        await client.post("/api/v1/schema/index")

        first = await client.delete("/api/v1/schema/index")
        second = await client.delete("/api/v1/schema/index")

        assert first.json() == {
            "traceId": first.headers["X-Trace-ID"],
            "collection": "schema_embeddings_shop",
            "existed": True,
        }
        assert second.json()["existed"] is False
        assert vectors.points == {}

    async def test_indexer_missing(self, state, client):
        response = await client.delete("/api/v1/schema/index")

        assert response.status_code == 503
