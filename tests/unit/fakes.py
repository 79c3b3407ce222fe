"""
In-memory fakes for the LLM, embedding and similarity-index collaborators,
plus a builder that wires them into a QueryOrchestrator.
"""

import math
from typing import Callable, Dict, List, Optional, Sequence, Union

from text2sql.config import AgentConfig, RetrievalConfig
from text2sql.domain.errors import EmbeddingError, LLMError, VectorStoreError
from text2sql.domain.schema_documents import EmbeddingPoint, SchemaDocument, ScoredDocument
from text2sql.repositories.intent_analysis import IntentAnalysisRepository
from text2sql.repositories.sql_correction import SQLCorrectionRepository
from text2sql.repositories.sql_execution import SQLExecutionRepository
from text2sql.repositories.sql_generation import SQLGenerationRepository
from text2sql.services.orchestrator import QueryOrchestrator
from text2sql.services.prompt_normalizer import PromptNormalizer
from text2sql.services.schema_retriever import SchemaContextRetriever


LLMReply = Union[str, Exception, Callable[[str, str], str]]

TABLE_COUNT_SQL = "SELECT COUNT(*) AS table_count FROM sqlite_master WHERE type = 'table'"


class FakeLLMClient:
    """Replays scripted replies; an Exception reply is raised instead."""

    def __init__(self, replies: Optional[Sequence[LLMReply]] = None):
        self.replies: List[LLMReply] = list(replies or [])
        self.calls: List[Dict[str, str]] = []

    def is_connected(self) -> bool:
        return True

    async def complete(self, prompt: str) -> str:
        return await self.complete_with_system_prompt("", prompt)

    async def complete_with_system_prompt(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append({"system": system_prompt, "user": user_prompt})
        if not self.replies:
            raise LLMError("No scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(system_prompt, user_prompt)
        return reply


class FakeEmbeddingClient:
    """
    Bag-of-keywords embedding: one dimension per keyword.

    Texts sharing keywords get a positive cosine similarity.
    """

    KEYWORDS = ("customer", "order", "product", "email", "amount", "name", "bảng", "khách")

    def __init__(self, fail: bool = False, dimension: Optional[int] = None):
        self.fail = fail
        self.dimension = dimension
        self.batch_calls: List[List[str]] = []
        self.text_calls: List[str] = []

    def is_connected(self) -> bool:
        return not self.fail

    def _vector(self, text: str) -> List[float]:
        lowered = text.lower()
        vector = [float(lowered.count(keyword)) for keyword in self.KEYWORDS]
        vector.append(0.1)
        if self.dimension is not None:
            vector = (vector + [0.0] * self.dimension)[:self.dimension]
        return vector

    async def embed_text(self, text: str) -> List[float]:
        self.text_calls.append(text)
        if self.fail:
            raise EmbeddingError("Embedding service unreachable")
        return self._vector(text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.batch_calls.append(list(texts))
        if self.fail:
            raise EmbeddingError("Embedding service unreachable")
        return [self._vector(text) for text in texts]


def _cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeVectorRepository:
    """In-memory similarity index with the VectorRepository interface."""

    def __init__(self, collection_name: str = "schema_embeddings_shop", fail: bool = False):
        self.collection_name = collection_name
        self.fail = fail
        self.points: Dict[str, EmbeddingPoint] = {}
        self.dimension: Optional[int] = None
        self.exists = False
        self.fetch_calls: List[List[str]] = []
        self.canned_results: Optional[List[ScoredDocument]] = None

    def _check(self) -> None:
        if self.fail:
            raise VectorStoreError("Similarity index unreachable")

    async def ensure_collection(self, dimension: int) -> bool:
        self._check()
        recreated = self.exists and self.dimension != dimension
        if recreated:
            self.points.clear()
        self.dimension = dimension
        self.exists = True
        return recreated

    async def upsert(self, points: List[EmbeddingPoint]) -> int:
        self._check()
        for point in points:
            self.points[point.document.id] = point
        return len(points)

    async def query(self, vector: List[float], top_k: int) -> List[ScoredDocument]:
        self._check()
        if self.canned_results is not None:
            return list(self.canned_results)[:top_k]
        scored = [
            ScoredDocument(document=point.document, score=_cosine(vector, point.vector))
            for point in self.points.values()
        ]
        scored.sort(key=lambda item: (-item.score, item.document.id))
        return scored[:top_k]

    async def fetch(self, ids: List[str]) -> List[SchemaDocument]:
        self._check()
        self.fetch_calls.append(list(ids))
        return [self.points[i].document for i in ids if i in self.points]

    async def collection_exists(self) -> bool:
        self._check()
        return self.exists

    async def delete_collection(self) -> bool:
        self._check()
        existed = self.exists
        self.points.clear()
        self.exists = False
        self.dimension = None
        return existed

    async def count(self) -> int:
        return len(self.points)


async def no_sleep(seconds: float) -> None:
    return None


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def build_orchestrator(adapter, db_config, llm, vectors=None, embeddings=None, **agent_overrides):
    """Real repositories over ``adapter``; keyword overrides go to AgentConfig."""
    agent_config = AgentConfig(**agent_overrides)
    retrieval_config = RetrievalConfig(top_k=10, minimum_score=0.3, max_context_tables=5)
    return QueryOrchestrator(
        normalizer=PromptNormalizer(),
        intent_repository=IntentAnalysisRepository(llm),
        retriever=SchemaContextRetriever(
            embeddings or FakeEmbeddingClient(), vectors or FakeVectorRepository(), retrieval_config
        ),
        generation_repository=SQLGenerationRepository(llm, adapter, agent_config),
        execution_repository=SQLExecutionRepository(adapter, db_config, sleep=no_sleep),
        correction_repository=SQLCorrectionRepository(llm, adapter, agent_config),
        adapter=adapter,
        llm_client=llm,
        config=agent_config,
        retrieval_config=retrieval_config,
    )
