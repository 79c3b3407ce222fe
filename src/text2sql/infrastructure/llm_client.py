"""
LLM client using LangChain.

This module provides an async LLM client built on LangChain's ChatOpenAI.
Every supported provider exposes an OpenAI-compatible endpoint, so the
provider tag only selects the constructor arguments.
"""

from typing import Callable, Dict, List, Optional
from langchain_openai import ChatOpenAI
from langchain_core.messages import HumanMessage, SystemMessage, BaseMessage
from pydantic import SecretStr

from ..config import LLMConfig
from ..config_constants import LLMProvider
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id
from ..utils.input_limits import check_total_chars
from ..domain.errors import ConfigurationError, LLMError


logger = get_module_logger()


def _build_openai_chat(config: LLMConfig) -> ChatOpenAI:
    return ChatOpenAI(
        model=config.model,
        api_key=SecretStr(config.api_key),
        base_url=config.base_url,
        temperature=config.temperature,
        max_completion_tokens=config.max_tokens,
        top_p=config.top_p,
        timeout=config.timeout_seconds,
        max_retries=config.max_retries,
    )


def _build_gemini_chat(config: LLMConfig) -> ChatOpenAI:
    # Gemini's OpenAI-compatible endpoint expects max_tokens, not max_completion_tokens
    return ChatOpenAI(
        model=config.model,
        api_key=SecretStr(config.api_key),
        base_url=config.base_url,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        top_p=config.top_p,
        timeout=config.timeout_seconds,
        max_retries=config.max_retries,
    )


# Provider tag -> constructor
CHAT_MODEL_FACTORIES: Dict[LLMProvider, Callable[[LLMConfig], ChatOpenAI]] = {
    LLMProvider.OPENAI: _build_openai_chat,
    LLMProvider.GEMINI: _build_gemini_chat,
    LLMProvider.OPENROUTER: _build_openai_chat,
}


class LLMClient:
    """
    LLM client using LangChain's ChatOpenAI.

    This is a thin infrastructure layer for LLM operations. Prompt
    construction lives in the repositories that call it.

    Features:
    - Provider dispatch (OpenAI, Gemini, OpenRouter)
    - Configurable temperature, top_p, max_tokens
    - Structured logging with trace IDs
    - Retry on transient provider failures (inside LangChain)
    - Input size validation before each call

    Usage:
        client = LLMClient(config)
        await client.connect()

        answer = await client.complete("What is the capital of France?")
        sql = await client.complete_with_system_prompt(
            "You are a PostgreSQL expert.",
            "List all customers"
        )

        await client.close()
    """

    def __init__(self, config: LLMConfig):
        """
        Initialize LLM client with configuration.

        Args:
            config: LLM configuration
        """
        self.config = config
        self._llm: Optional[ChatOpenAI] = None
        self._is_connected = False

        logger.info(
            "LLMClient initialized",
            provider=config.provider.value,
            model=config.model,
            base_url=config.base_url,
            temperature=config.temperature,
            max_tokens=config.max_tokens
        )

    async def connect(self) -> None:
        """
        Build the LangChain chat model for the configured provider.

        No API call is made here; credentials are validated on first use.

        Raises:
            ConfigurationError: If the provider has no registered constructor
            LLMError: If initialization fails
        """
        if self._is_connected:
            logger.warning("LLM client already connected")
            return

        trace_id = current_trace_id()
        logger.info("Initializing LLM client", trace_id=trace_id)

        factory = CHAT_MODEL_FACTORIES.get(self.config.provider)
        if factory is None:
            raise ConfigurationError(f"Unsupported LLM provider: {self.config.provider}")

        try:
            self._llm = factory(self.config)
            self._is_connected = True
            logger.info("LLM client initialized successfully", trace_id=trace_id)

        except Exception as e:
            error_msg = f"Failed to initialize LLM client: {e}"
            logger.error(error_msg, error_type=type(e).__name__, trace_id=trace_id)
            raise LLMError(error_msg) from e

    async def close(self) -> None:
        """Close LLM client and release resources."""
        trace_id = current_trace_id()

        # LangChain ChatOpenAI doesn't need explicit cleanup
        self._is_connected = False
        self._llm = None

        logger.info("LLM client closed", trace_id=trace_id)

    def is_connected(self) -> bool:
        """Check if LLM client is connected."""
        return self._is_connected and self._llm is not None

    async def complete(self, prompt: str) -> str:
        """Generate a response for a single user prompt."""
        return await self.generate(prompt)

    async def complete_with_system_prompt(self, system_prompt: str, user_prompt: str) -> str:
        """Generate a response for a user prompt under a system prompt."""
        return await self.generate(user_prompt, system_prompt=system_prompt)

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Generate text response from LLM.

        Args:
            prompt: User prompt/question
            system_prompt: Optional system prompt for context
            temperature: Optional temperature override (0.0-1.0)
            max_tokens: Optional max tokens override

        Returns:
            Generated text response

        Raises:
            LLMError: If generation fails, returns nothing, or input is too large
        """
        if not self.is_connected() or self._llm is None:
            raise LLMError("LLM client is not connected")

        try:
            check_total_chars(prompt, system_prompt, self.config.max_input_chars)
        except ValueError as e:
            raise LLMError(str(e)) from e

        trace_id = current_trace_id()

        logger.info(
            "Generating LLM response",
            prompt_length=len(prompt),
            system_prompt_length=len(system_prompt) if system_prompt else 0,
            temperature=temperature if temperature is not None else self.config.temperature,
            trace_id=trace_id
        )

        messages: List[BaseMessage] = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))
        messages.append(HumanMessage(content=prompt))

        llm = self._llm
        if temperature is not None or max_tokens is not None:
            bind_kwargs = {}
            if temperature is not None:
                bind_kwargs["temperature"] = temperature
            if max_tokens is not None:
                bind_kwargs["max_completion_tokens"] = max_tokens
            llm = llm.bind(**bind_kwargs)

        try:
            response = await llm.ainvoke(messages)
        except Exception as e:
            error_msg = f"LLM generation failed: {e}"
            logger.error(
                error_msg,
                error_type=type(e).__name__,
                prompt_length=len(prompt),
                trace_id=trace_id
            )
            raise LLMError(error_msg) from e

        if not response or not response.content:
            raise LLMError("LLM returned empty response")

        content = str(response.content)

        logger.info(
            "LLM response generated successfully",
            response_length=len(content),
            trace_id=trace_id
        )

        return content
