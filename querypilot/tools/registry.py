"""Tool registry: declarations sent to the model and validation of its calls."""

from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from querypilot.llm.models import LLMToolCall, LLMToolDeclaration
from querypilot.models.agent import ToolCallValidationError
from querypilot.models.plan import ToolCall
from querypilot.tools.base import ToolDefinition

logger = logging.getLogger(__name__)

_TOOL_CALL_ADAPTER: TypeAdapter[ToolCall] = TypeAdapter(ToolCall)


class ToolRegistry:
    _definitions: dict[str, ToolDefinition] = {}
    _handlers: dict[str, Callable[..., Any]] = {}

    @classmethod
    def register(cls, definition: ToolDefinition, handler: Callable[..., Any]) -> None:
        cls._definitions[definition.name] = definition
        cls._handlers[definition.name] = handler
        logger.debug(f"Registered tool: {definition.name}")

    @classmethod
    def get_definition(cls, name: str) -> ToolDefinition | None:
        return cls._definitions.get(name)

    @classmethod
    def get_handler(cls, name: str) -> Callable[..., Any] | None:
        return cls._handlers.get(name)

    @classmethod
    def declarations(cls) -> list[LLMToolDeclaration]:
        return [definition.to_declaration() for definition in cls._definitions.values()]

    @classmethod
    def parse_call(cls, call: LLMToolCall, agent: str = "QueryAgent") -> ToolCall:
        """
        Validate a provider-issued call before dispatch.

        Raises:
            ToolCallValidationError: Unknown tool name or invalid arguments
        """
        if call.name not in cls._definitions:
            raise ToolCallValidationError(
                agent,
                f"Unknown tool: {call.name}",
                context={"available": sorted(cls._definitions)},
            )
        try:
            return _TOOL_CALL_ADAPTER.validate_python(
                {"name": call.name, "id": call.id, "args": call.arguments}
            )
        except PydanticValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            )
            raise ToolCallValidationError(
                agent,
                f"Invalid arguments for {call.name}: {problems}",
                context={"arguments": call.arguments},
            ) from exc
