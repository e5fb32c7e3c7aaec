"""
LLM Provider Module

Multi-provider LLM abstraction layer with function calling, supporting
OpenAI, Anthropic, Google, and local OpenAI-compatible models.

Usage:
    from querypilot.llm import LLMProviderFactory, LLMRequest, LLMMessage
    from querypilot.config import get_settings

    config = get_settings()
    provider = LLMProviderFactory.create_default_provider(config.llm)

    request = LLMRequest(
        messages=[LLMMessage(role="user", content="Hello!")],
    )

    response = await provider.generate(request)
    print(response.content, response.tool_calls)
"""

from querypilot.llm.anthropic import AnthropicProvider
from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.factory import LLMProviderFactory
from querypilot.llm.google import GoogleProvider
from querypilot.llm.local import LocalProvider
from querypilot.llm.models import (
    LLMMessage,
    LLMRequest,
    LLMResponse,
    LLMToolCall,
    LLMToolDeclaration,
    LLMToolResult,
    LLMUsage,
)
from querypilot.llm.openai import OpenAIProvider

__all__ = [
    # Base classes
    "BaseLLMProvider",
    # Models
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "LLMToolCall",
    "LLMToolDeclaration",
    "LLMToolResult",
    "LLMUsage",
    # Factory
    "LLMProviderFactory",
    # Providers
    "OpenAIProvider",
    "AnthropicProvider",
    "GoogleProvider",
    "LocalProvider",
]
