"""
Local LLM Provider

Implementation of BaseLLMProvider for local models served behind an
OpenAI-compatible ``/v1/chat/completions`` endpoint (Ollama, vLLM,
LM Studio, llama.cpp server). Function calling works when the served
model supports it.
"""

import logging
from typing import Any

import httpx

from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.models import LLMRequest, LLMResponse, LLMToolCall, LLMUsage
from querypilot.llm.openai import (
    map_openai_finish_reason,
    to_openai_messages,
    to_openai_tool,
)

logger = logging.getLogger(__name__)


class LocalProvider(BaseLLMProvider):
    """Local LLM provider talking to an OpenAI-compatible server over httpx."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 30,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize local provider.

        Args:
            base_url: Base URL for local model server
            model: Model name (e.g., "llama3.1:8b" for Ollama)
            temperature: Default temperature
            max_tokens: Default max tokens
            timeout: Request timeout
            client: Optional pre-built httpx client (tests, shared pools)
        """
        super().__init__(
            provider_name="local",
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )

        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=float(timeout))

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Generate completion using the local model server."""
        request = self._apply_defaults(request)
        self._log_request(request)

        payload: dict[str, Any] = {
            "model": request.model or self.model,
            "messages": to_openai_messages(request.messages),
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.tools:
            payload["tools"] = [to_openai_tool(tool) for tool in request.tools]

        response = await self.client.post(
            f"{self.base_url}/v1/chat/completions",
            json=payload,
        )
        response.raise_for_status()
        body = response.json()

        choice = (body.get("choices") or [{}])[0]
        message = choice.get("message") or {}
        tool_calls = [
            LLMToolCall(
                id=call.get("id"),
                name=call.get("function", {}).get("name", ""),
                arguments=self._decode_arguments(call.get("function", {}).get("arguments")),
            )
            for call in message.get("tool_calls") or []
        ]
        usage = body.get("usage") or {}
        prompt_tokens = usage.get("prompt_tokens", 0)
        completion_tokens = usage.get("completion_tokens", 0)

        llm_response = LLMResponse(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            model=body.get("model", self.model),
            usage=LLMUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason=map_openai_finish_reason(choice.get("finish_reason")),
            provider="local",
            metadata={"base_url": self.base_url},
        )

        self._log_response(llm_response)
        return llm_response

    def _decode_arguments(self, raw: Any) -> dict[str, Any]:
        # Some servers return arguments as an object rather than a JSON string
        if isinstance(raw, dict):
            return raw
        return self._load_arguments(raw)
