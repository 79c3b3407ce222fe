"""
Embedding client using LangChain.

This module provides an async embedding client built on LangChain's
OpenAIEmbeddings, with the same provider dispatch as the LLM client.
"""

from typing import Callable, Dict, List, Optional
from pydantic import SecretStr
from langchain_openai import OpenAIEmbeddings

from ..config import EmbeddingConfig
from ..config_constants import LLMProvider
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id
from ..utils.input_limits import check_batch_chars, check_char_limit
from ..domain.errors import ConfigurationError, EmbeddingError


logger = get_module_logger()


def _build_openai_embeddings(config: EmbeddingConfig) -> OpenAIEmbeddings:
    return OpenAIEmbeddings(
        model=config.model,
        api_key=SecretStr(config.api_key),
        base_url=config.base_url,
        dimensions=config.dimensions,
        timeout=config.timeout_seconds,
        max_retries=config.max_retries,
    )


def _build_gemini_embeddings(config: EmbeddingConfig) -> OpenAIEmbeddings:
    # The compatibility endpoint takes raw strings, not pre-tokenized input
    return OpenAIEmbeddings(
        model=config.model,
        api_key=SecretStr(config.api_key),
        base_url=config.base_url,
        timeout=config.timeout_seconds,
        max_retries=config.max_retries,
        check_embedding_ctx_length=False,
    )


# Provider tag -> constructor
EMBEDDING_FACTORIES: Dict[LLMProvider, Callable[[EmbeddingConfig], OpenAIEmbeddings]] = {
    LLMProvider.OPENAI: _build_openai_embeddings,
    LLMProvider.GEMINI: _build_gemini_embeddings,
    LLMProvider.OPENROUTER: _build_openai_embeddings,
}


class EmbeddingClient:
    """
    Embedding client using LangChain's OpenAIEmbeddings.

    This is a thin infrastructure layer; batching and pacing for schema
    indexing are handled by the SchemaIndexer.

    Usage:
        client = EmbeddingClient(config)
        await client.connect()

        vector = await client.embed_text("What is a database?")
        vectors = await client.embed_batch(["customers table", "orders table"])

        await client.close()
    """

    def __init__(self, config: EmbeddingConfig):
        """
        Initialize embedding client with configuration.

        Args:
            config: Embedding configuration
        """
        self.config = config
        self._embeddings: Optional[OpenAIEmbeddings] = None
        self._is_connected = False

        logger.info(
            "EmbeddingClient initialized",
            provider=config.provider.value,
            model=config.model,
            base_url=config.base_url,
            dimensions=config.dimensions,
        )

    async def connect(self) -> None:
        """
        Build the LangChain embeddings client for the configured provider.

        Raises:
            ConfigurationError: If the provider has no registered constructor
            EmbeddingError: If initialization fails
        """
        if self._is_connected:
            logger.warning("Embedding client already connected")
            return

        trace_id = current_trace_id()
        logger.info("Initializing embedding client", trace_id=trace_id)

        factory = EMBEDDING_FACTORIES.get(self.config.provider)
        if factory is None:
            raise ConfigurationError(f"Unsupported embedding provider: {self.config.provider}")

        try:
            self._embeddings = factory(self.config)
            self._is_connected = True
            logger.info("Embedding client initialized successfully", trace_id=trace_id)

        except Exception as e:
            error_msg = f"Failed to initialize embedding client: {e}"
            logger.error(error_msg, error_type=type(e).__name__, trace_id=trace_id)
            raise EmbeddingError(error_msg) from e

    async def close(self) -> None:
        """Close embedding client and release resources."""
        self._is_connected = False
        self._embeddings = None
        logger.info("Embedding client closed", trace_id=current_trace_id())

    def is_connected(self) -> bool:
        """Check if embedding client is connected."""
        return self._is_connected and self._embeddings is not None

    def _check_dimension(self, vector: List[float], index: Optional[int] = None) -> None:
        expected = self.config.dimensions
        if not vector or (expected is not None and len(vector) != expected):
            where = f" at index {index}" if index is not None else ""
            raise EmbeddingError(
                f"Invalid embedding dimension{where}: expected {expected}, "
                f"got {len(vector) if vector else 0}"
            )

    async def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding vector for a single text.

        Raises:
            EmbeddingError: If embedding generation fails or text is too large
        """
        if not self.is_connected() or self._embeddings is None:
            raise EmbeddingError("Embedding client is not connected")

        try:
            check_char_limit(text, self.config.max_input_chars, label="Text")
        except ValueError as e:
            raise EmbeddingError(str(e)) from e

        trace_id = current_trace_id()
        logger.debug("Generating embedding for text", text_length=len(text), trace_id=trace_id)

        try:
            vector = await self._embeddings.aembed_query(text)
        except Exception as e:
            error_msg = f"Embedding generation failed: {e}"
            logger.error(error_msg, error_type=type(e).__name__, text_length=len(text), trace_id=trace_id)
            raise EmbeddingError(error_msg) from e

        self._check_dimension(vector)
        return vector

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embedding vectors for multiple texts in one request.

        Returns:
            List of embedding vectors (same order as input texts)

        Raises:
            EmbeddingError: If batch embedding fails or any text is too large
        """
        if not self.is_connected() or self._embeddings is None:
            raise EmbeddingError("Embedding client is not connected")

        if not texts:
            return []

        try:
            check_batch_chars(texts, self.config.max_input_chars)
        except ValueError as e:
            raise EmbeddingError(str(e)) from e

        trace_id = current_trace_id()
        logger.info("Generating batch embeddings", num_texts=len(texts), trace_id=trace_id)

        try:
            vectors = await self._embeddings.aembed_documents(texts)
        except Exception as e:
            error_msg = f"Batch embedding generation failed: {e}"
            logger.error(error_msg, error_type=type(e).__name__, num_texts=len(texts), trace_id=trace_id)
            raise EmbeddingError(error_msg) from e

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding count mismatch: sent {len(texts)} texts, got {len(vectors)} vectors"
            )
        for i, vector in enumerate(vectors):
            self._check_dimension(vector, index=i)

        logger.info(
            "Batch embeddings generated successfully",
            num_vectors=len(vectors),
            dimension=len(vectors[0]),
            trace_id=trace_id
        )

        return vectors
