"""Tool system entrypoint."""

from __future__ import annotations

from querypilot.llm.models import LLMToolCall
from querypilot.models.plan import ToolCall
from querypilot.tools.base import ToolContext, ToolDefinition, tool
from querypilot.tools.executor import ToolExecutionError, ToolExecutor
from querypilot.tools.registry import ToolRegistry


def initialize_tools() -> None:
    # Register built-in tools
    from querypilot.tools.builtin import sql  # noqa: F401


def parse_tool_call(call: LLMToolCall) -> ToolCall:
    """Validate a provider-issued call; raises ``ToolCallValidationError``."""
    initialize_tools()
    return ToolRegistry.parse_call(call)


__all__ = [
    "ToolContext",
    "ToolDefinition",
    "ToolExecutionError",
    "ToolExecutor",
    "ToolRegistry",
    "initialize_tools",
    "parse_tool_call",
    "tool",
]
