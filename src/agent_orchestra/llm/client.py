"""
Completion clients for different model providers.

Supports:
- Anthropic Claude API
- OpenAI API
- OpenRouter (OpenAI-compatible gateway)

Clients pass messages through unchanged; prompting strategy lives with the
agent executors.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from agent_orchestra.config import LLMProvider, LLMSettings, get_settings
from agent_orchestra.exceptions import ProviderError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Completion:
    """Result of a completion call."""

    content: str
    model: str
    usage: dict | None = None


def _to_provider_error(provider: str, error: Exception) -> ProviderError:
    """Map an SDK exception onto ProviderError, keeping the HTTP status if any."""
    status = getattr(error, "status_code", None)
    message = str(error) or error.__class__.__name__
    if "timeout" in error.__class__.__name__.lower():
        message = f"{provider} request timed out: {message}"
    return ProviderError(message, provider=provider, status=status)


class LLMClient(ABC):
    """Abstract base class for completion clients."""

    @abstractmethod
    async def complete(
        self,
        messages: list[dict],
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Completion:
        """Generate a completion."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name for logging."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the default model name."""
        pass

    def is_available(self) -> bool:
        """Check if the client is available (API key configured, server reachable)."""
        return True


class AnthropicClient(LLMClient):
    """Client for Anthropic Claude API."""

    def __init__(self, settings: Optional[LLMSettings] = None):
        """
        Initialize Anthropic client.

        Args:
            settings: LLM settings with API key.
        """
        self.settings = settings or get_settings().llm

        self.api_key = self.settings.anthropic_api_key or self.settings.api_key
        if not self.api_key:
            raise ValueError(
                "Anthropic API key required. Set ORCHESTRA_LLM_ANTHROPIC_API_KEY or ORCHESTRA_LLM_API_KEY environment variable."
            )

    @property
    def provider_name(self) -> str:
        return "Anthropic"

    @property
    def model_name(self) -> str:
        return self.settings.anthropic_model

    async def complete(
        self,
        messages: list[dict],
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Completion:
        """Generate completion using Anthropic API."""
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic package required. Install with: pip install agent-orchestra[llm]"
            )

        client = anthropic.AsyncAnthropic(
            api_key=self.api_key,
            timeout=float(self.settings.timeout_seconds),
        )
        model = model or self.model_name
        logger.debug(f"LLM request: {self.provider_name}/{model} ({len(messages)} messages)")
        start = time.time()

        try:
            response = await client.messages.create(
                model=model,
                max_tokens=max_tokens or self.settings.max_tokens,
                system=system or "",
                messages=messages,
                temperature=temperature if temperature is not None else self.settings.temperature,
            )
        except anthropic.AnthropicError as e:
            raise _to_provider_error(self.provider_name, e) from e

        usage = {
            "input_tokens": response.usage.input_tokens,
            "output_tokens": response.usage.output_tokens,
        }
        logger.debug(
            f"LLM response: {self.provider_name}/{model} in {(time.time() - start) * 1000:.0f}ms"
        )
        return Completion(content=response.content[0].text, model=model, usage=usage)


class OpenAIClient(LLMClient):
    """Client for OpenAI API."""

    def __init__(self, settings: Optional[LLMSettings] = None):
        """
        Initialize OpenAI client.

        Args:
            settings: LLM settings with API key.
        """
        self.settings = settings or get_settings().llm

        self.api_key = self._resolve_api_key()
        if not self.api_key:
            raise ValueError(
                f"{self.provider_name} API key required. Set the provider key or ORCHESTRA_LLM_API_KEY environment variable."
            )

    def _resolve_api_key(self) -> Optional[str]:
        return self.settings.openai_api_key or self.settings.api_key

    @property
    def provider_name(self) -> str:
        return "OpenAI"

    @property
    def model_name(self) -> str:
        return self.settings.openai_model

    @property
    def base_url(self) -> Optional[str]:
        return None

    async def complete(
        self,
        messages: list[dict],
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Completion:
        """Generate completion using an OpenAI-compatible API."""
        try:
            import openai
        except ImportError:
            raise ImportError(
                "openai package required. Install with: pip install agent-orchestra[llm]"
            )

        client = openai.AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=float(self.settings.timeout_seconds),
        )
        model = model or self.model_name

        # Prepend system message
        all_messages = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)

        logger.debug(f"LLM request: {self.provider_name}/{model} ({len(all_messages)} messages)")
        start = time.time()

        try:
            response = await client.chat.completions.create(
                model=model,
                max_tokens=max_tokens or self.settings.max_tokens,
                messages=all_messages,
                temperature=temperature if temperature is not None else self.settings.temperature,
            )
        except openai.OpenAIError as e:
            raise _to_provider_error(self.provider_name, e) from e

        usage = None
        if response.usage is not None:
            usage = {
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            }
        logger.debug(
            f"LLM response: {self.provider_name}/{model} in {(time.time() - start) * 1000:.0f}ms"
        )
        return Completion(
            content=response.choices[0].message.content or "",
            model=model,
            usage=usage,
        )


class OpenRouterClient(OpenAIClient):
    """Client for the OpenRouter gateway.

    OpenRouter exposes an OpenAI-compatible API in front of many providers;
    model names are namespaced, e.g. ``anthropic/claude-3-opus``.
    """

    def _resolve_api_key(self) -> Optional[str]:
        return self.settings.openrouter_api_key or self.settings.api_key

    @property
    def provider_name(self) -> str:
        return "OpenRouter"

    @property
    def model_name(self) -> str:
        return self.settings.openrouter_model

    @property
    def base_url(self) -> Optional[str]:
        return self.settings.openrouter_base_url

    def is_available(self) -> bool:
        """Check that the gateway answers the models endpoint."""
        import httpx

        try:
            with httpx.Client(timeout=5.0) as client:
                response = client.get(
                    f"{self.base_url}/models",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug(f"OpenRouter not available: {e}")
            return False


def create_client(settings: Optional[LLMSettings] = None) -> LLMClient:
    """
    Create a completion client based on settings.

    Args:
        settings: LLM settings. Uses global settings if not provided.

    Returns:
        LLMClient instance for the configured provider.

    Raises:
        ValueError: If the provider is not supported.
    """
    settings = settings or get_settings().llm

    if settings.provider == LLMProvider.ANTHROPIC:
        return AnthropicClient(settings)
    elif settings.provider == LLMProvider.OPENAI:
        return OpenAIClient(settings)
    elif settings.provider == LLMProvider.OPENROUTER:
        return OpenRouterClient(settings)
    else:
        raise ValueError(f"Unsupported LLM provider: {settings.provider}")


def get_available_providers() -> list[tuple[LLMProvider, bool]]:
    """
    Check which providers have an API key configured.

    Returns:
        List of (provider, is_available) tuples.
    """
    results = []
    for provider in LLMProvider:
        settings = LLMSettings(provider=provider)
        results.append((provider, bool(settings.get_active_api_key())))
    return results
