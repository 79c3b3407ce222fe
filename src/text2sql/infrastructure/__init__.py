"""
Infrastructure layer for external integrations.

This module contains clients for external services: the asyncpg pool,
LLM and embedding providers, and the per-dialect database adapters.
"""

from .database_client import DatabaseClient
from .embedding_client import EmbeddingClient
from .llm_client import LLMClient

__all__ = ["DatabaseClient", "EmbeddingClient", "LLMClient"]
