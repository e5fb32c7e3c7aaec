"""
Base LLM Provider

Abstract base class defining the interface for all LLM providers.
Ensures a consistent function-calling API across OpenAI, Anthropic,
Google and local OpenAI-compatible servers.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from querypilot.llm.models import LLMRequest, LLMResponse

logger = logging.getLogger(__name__)


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Attributes:
        provider_name: Unique identifier for this provider
        model: Default model name
        temperature: Default sampling temperature
        max_tokens: Default maximum tokens to generate
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        provider_name: str,
        model: str,
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 30,
    ):
        self.provider_name = provider_name
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

        logger.info(
            f"Initialized {provider_name} provider with model: {model}",
            extra={
                "provider": provider_name,
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Generate a completion from the LLM.

        When ``request.tools`` is non-empty the model may answer with
        ``LLMResponse.tool_calls`` instead of (or alongside) text.

        Args:
            request: LLM request with messages, tools and parameters

        Returns:
            LLMResponse with generated content, tool calls and metadata

        Raises:
            Exception: Provider-specific errors (API errors, timeouts, etc.)
        """
        pass  # pragma: no cover - abstract method

    def _apply_defaults(self, request: LLMRequest) -> LLMRequest:
        """Apply default values to request if not specified."""
        if request.temperature is None:
            request.temperature = self.temperature
        if request.max_tokens is None:
            request.max_tokens = self.max_tokens
        return request

    @staticmethod
    def _dump_json(payload: Any) -> str:
        """Serialize tool payloads; database values (dates, decimals) become strings."""
        return json.dumps(payload, default=str, ensure_ascii=False)

    @staticmethod
    def _load_arguments(raw: str | None) -> dict[str, Any]:
        """Decode JSON-encoded call arguments; malformed input yields an empty dict."""
        if not raw:
            return {}
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Could not decode tool call arguments: {raw[:200]}")
            return {}
        return value if isinstance(value, dict) else {}

    def _log_request(self, request: LLMRequest) -> None:
        """Log request details for debugging."""
        logger.debug(
            f"{self.provider_name} request",
            extra={
                "provider": self.provider_name,
                "message_count": len(request.messages),
                "tool_count": len(request.tools),
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
            },
        )

    def _log_response(self, response: LLMResponse) -> None:
        """Log response details for debugging."""
        logger.debug(
            f"{self.provider_name} response",
            extra={
                "provider": self.provider_name,
                "model": response.model,
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
                "finish_reason": response.finish_reason,
                "tool_calls": [call.name for call in response.tool_calls],
            },
        )
