"""
LLM Client - Unified chat-completion transport for multiple LLM providers.
Supports OpenAI, Mistral, OpenRouter, Ollama, and an offline mock.
"""
from openai import AsyncOpenAI, OpenAIError
from typing import Optional, Protocol
import logging

from ..config import get_llm_config, settings
from ..errors import TransportError

logger = logging.getLogger(__name__)


class ChatTransport(Protocol):
    """Send a conversation, receive the assistant's text."""

    async def chat(self, messages: list[dict]) -> str:
        ...


class LLMClient:
    """Async LLM client with OpenAI-compatible API."""

    def __init__(self):
        config = get_llm_config()

        # Use mock client if provider is 'mock'
        if settings.llm_provider == "mock":
            from .mock_llm import MockLLMClient
            self._mock = MockLLMClient()
            self.model = self._mock.model
            self.temperature = config["temperature"]
            self.max_tokens = config["max_tokens"]
            self.client = None
        else:
            self._mock = None
            self.client = AsyncOpenAI(
                api_key=config["api_key"],
                base_url=config["base_url"],
                timeout=config["timeout"],
            )
            self.model = config["model"]
            self.temperature = config["temperature"]
            self.max_tokens = config["max_tokens"]

    async def chat(
        self,
        messages: list[dict],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> str:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Override default temperature
            max_tokens: Override default max tokens

        Returns:
            The assistant's response content

        Raises:
            TransportError: on network, provider or decode failure, or an empty reply
        """
        # Use mock client if available
        if self._mock is not None:
            return await self._mock.chat(messages)

        kwargs = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature if temperature is not None else self.temperature,
            "max_tokens": max_tokens if max_tokens is not None else self.max_tokens,
        }

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except OpenAIError as e:
            logger.warning(f"Chat completion failed ({self.model}): {e}")
            raise TransportError(f"Chat completion failed: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            raise TransportError("No message received")
        return response.choices[0].message.content
