"""
Completion clients used by agent executors.

Supports multiple providers:
- Anthropic Claude
- OpenAI GPT
- OpenRouter
"""

from agent_orchestra.llm.client import (
    AnthropicClient,
    Completion,
    LLMClient,
    OpenAIClient,
    OpenRouterClient,
    create_client,
    get_available_providers,
)

__all__ = [
    "Completion",
    "LLMClient",
    "AnthropicClient",
    "OpenAIClient",
    "OpenRouterClient",
    "create_client",
    "get_available_providers",
]
