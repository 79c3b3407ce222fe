"""
Integration tests for LLMClient connection and functionality.

This module verifies connectivity to the configured chat model provider
and basic generation through LangChain.

Usage:
    # Run all LLM connection tests
    pytest tests/integration/test_llm_connection.py -m integration -v

    # Run with output
    pytest tests/integration/test_llm_connection.py -m integration -v -s

Requirements:
    - LLM__API_KEY (and optionally LLM__PROVIDER, LLM__MODEL) set in .env
"""

import pytest

from text2sql.config import get_settings
from text2sql.domain.errors import LLMError
from text2sql.infrastructure.llm_client import LLMClient
from text2sql.repositories.intent_analysis import IntentAnalysisRepository
from text2sql.services.prompt_normalizer import PromptNormalizer


@pytest.fixture
def llm_config():
    """Get LLM configuration from settings."""
    return get_settings().llm


@pytest.fixture
async def llm_client(llm_config):
    """Create and connect LLM client."""
    client = LLMClient(llm_config)
    await client.connect()
    yield client
    if client.is_connected():
        await client.close()


@pytest.mark.integration
class TestLLMConnection:
    """Integration tests for LLM client connectivity."""

    async def test_basic_connection(self, llm_config):
        """Test basic LLM client connection and disconnection."""
        client = LLMClient(llm_config)

        await client.connect()
        assert client.is_connected()

        await client.close()
        assert not client.is_connected()

    async def test_config_applied(self, llm_config, llm_client):
        assert llm_client.config == llm_config


@pytest.mark.integration
class TestGeneration:
    """Integration tests for text generation."""

    async def test_complete(self, llm_client):
        response = await llm_client.complete("What is 2 + 2? Answer with just the number.")

        assert isinstance(response, str)
        assert "4" in response

    async def test_complete_with_system_prompt(self, llm_client):
        response = await llm_client.complete_with_system_prompt(
            "You are a SQL expert. Return ONLY the SQL query.",
            "Count the rows of a table named customers.",
        )

        assert "select" in response.lower()
        assert "customers" in response.lower()

    async def test_max_tokens_override(self, llm_client):
        response = await llm_client.generate("Count from 1 to 100", max_tokens=50)

        assert len(response) < 500

    async def test_oversized_prompt_rejected_locally(self, llm_client):
        with pytest.raises(LLMError):
            await llm_client.generate("x" * (llm_client.config.max_input_chars + 1))


@pytest.mark.integration
class TestIntentAnalysis:
    """Intent classification against the real model."""

    async def test_vietnamese_schema_question(self, llm_client):
        prompt = PromptNormalizer().normalize("Có bao nhiêu bảng trong database?")

        intent = await IntentAnalysisRepository(llm_client).analyze(prompt)

        assert intent.category.value in ("SCHEMA", "COUNT")
        assert intent.question == prompt.normalized_text
