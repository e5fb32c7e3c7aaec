"""
Google LLM Provider

Implementation of BaseLLMProvider for Google's Gemini models using the
google-genai SDK, including native function calling.
"""

import logging
from typing import Any

from google.genai import Client, types

from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.models import (
    LLMMessage,
    LLMRequest,
    LLMResponse,
    LLMToolCall,
    LLMToolDeclaration,
    LLMUsage,
)

logger = logging.getLogger(__name__)

_JSON_TO_GEMINI_TYPE = {
    "string": "STRING",
    "integer": "INTEGER",
    "number": "NUMBER",
    "boolean": "BOOLEAN",
    "array": "ARRAY",
    "object": "OBJECT",
}


class GoogleProvider(BaseLLMProvider):
    """
    Google (Gemini) LLM provider implementation.

    Gemini has no "tool" role: function responses are sent back as a
    ``user`` turn made of ``function_response`` parts, and the model's
    calls are replayed as a ``model`` turn of ``function_call`` parts.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 30,
    ):
        super().__init__(
            provider_name="google",
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )

        self.client = Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=timeout * 1000),
        )

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Generate completion using Google Gemini API."""
        request = self._apply_defaults(request)
        self._log_request(request)

        model_name = request.model or self.model
        config = types.GenerateContentConfig(
            system_instruction=request.system_prompt,
            temperature=request.temperature,
            max_output_tokens=request.max_tokens,
            tools=self._convert_tools(request.tools) if request.tools else None,
        )

        response = await self.client.aio.models.generate_content(
            model=model_name,
            contents=self._convert_messages(request.messages),
            config=config,
        )

        text, tool_calls = self._extract_parts(response)
        usage_metadata = getattr(response, "usage_metadata", None)
        prompt_tokens = getattr(usage_metadata, "prompt_token_count", None) or 0
        completion_tokens = getattr(usage_metadata, "candidates_token_count", None) or 0

        llm_response = LLMResponse(
            content=text,
            tool_calls=tool_calls,
            model=model_name,
            usage=LLMUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason="tool_calls" if tool_calls else self._extract_finish_reason(response),
            provider="google",
            metadata={"raw_finish_reason": self._extract_raw_finish_reason(response)},
        )

        self._log_response(llm_response)
        return llm_response

    def _convert_messages(self, messages: list[LLMMessage]) -> list[types.Content]:
        contents: list[types.Content] = []
        for msg in messages:
            if msg.role == "system":
                continue
            if msg.role == "user":
                contents.append(types.Content(role="user", parts=[types.Part(text=msg.content)]))
            elif msg.role == "assistant":
                parts: list[types.Part] = []
                if msg.content:
                    parts.append(types.Part(text=msg.content))
                parts.extend(
                    types.Part(
                        function_call=types.FunctionCall(
                            id=call.id, name=call.name, args=call.arguments
                        )
                    )
                    for call in msg.tool_calls
                )
                contents.append(types.Content(role="model", parts=parts))
            else:
                contents.append(
                    types.Content(
                        role="user",
                        parts=[
                            types.Part(
                                function_response=types.FunctionResponse(
                                    id=result.call_id,
                                    name=result.name,
                                    response=result.response,
                                )
                            )
                            for result in msg.tool_results
                        ],
                    )
                )
        return contents

    def _convert_tools(self, tools: list[LLMToolDeclaration]) -> list[types.Tool]:
        return [
            types.Tool(
                function_declarations=[
                    types.FunctionDeclaration(
                        name=tool.name,
                        description=tool.description,
                        parameters=self._to_gemini_schema(tool.parameters),
                    )
                    for tool in tools
                ]
            )
        ]

    def _to_gemini_schema(self, schema: dict[str, Any]) -> types.Schema:
        """Translate a (simple) JSON schema into a Gemini ``Schema``."""
        schema_type = _JSON_TO_GEMINI_TYPE.get(str(schema.get("type", "string")), "STRING")
        kwargs: dict[str, Any] = {"type": schema_type}
        if schema.get("description"):
            kwargs["description"] = schema["description"]
        if schema.get("enum"):
            kwargs["enum"] = [str(value) for value in schema["enum"]]
        if schema_type == "OBJECT" and schema.get("properties"):
            kwargs["properties"] = {
                name: self._to_gemini_schema(prop) for name, prop in schema["properties"].items()
            }
            if schema.get("required"):
                kwargs["required"] = list(schema["required"])
        if schema_type == "ARRAY":
            kwargs["items"] = self._to_gemini_schema(schema.get("items") or {})
        return types.Schema(**kwargs)

    def _extract_parts(self, response: Any) -> tuple[str, list[LLMToolCall]]:
        """Collect text and function calls from the first candidate."""
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return "", []
        content = getattr(candidates[0], "content", None)
        parts = getattr(content, "parts", None) or []

        texts: list[str] = []
        tool_calls: list[LLMToolCall] = []
        for part in parts:
            function_call = getattr(part, "function_call", None)
            if function_call is not None:
                tool_calls.append(
                    LLMToolCall(
                        id=getattr(function_call, "id", None),
                        name=function_call.name,
                        arguments=dict(function_call.args) if function_call.args else {},
                    )
                )
                continue
            text = getattr(part, "text", None)
            if isinstance(text, str) and not getattr(part, "thought", False):
                texts.append(text)
        return "".join(texts), tool_calls

    def _extract_raw_finish_reason(self, response: Any) -> str:
        candidates = getattr(response, "candidates", None)
        if not candidates:
            return ""
        reason = getattr(candidates[0], "finish_reason", "")
        return str(reason or "")

    def _extract_finish_reason(self, response: Any) -> str:
        raw_reason = self._extract_raw_finish_reason(response).lower()
        if any(token in raw_reason for token in ("max_tokens", "length")):
            return "length"
        if any(token in raw_reason for token in ("safety", "blocked", "recitation")):
            return "content_filter"
        if "error" in raw_reason:
            return "error"
        return "stop"
