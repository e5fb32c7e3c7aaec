"""Tool execution engine."""

from __future__ import annotations

import inspect
import logging
from typing import Any, assert_never

from querypilot.models.plan import ExecuteSQLCall, QueryExecution, ToolCall
from querypilot.tools.base import ToolContext
from querypilot.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolExecutionError(Exception):
    pass


class ToolExecutor:
    """Dispatches validated tool calls to their registered handlers."""

    async def execute(self, call: ToolCall, ctx: ToolContext) -> QueryExecution:
        match call:
            case ExecuteSQLCall():
                arguments: dict[str, Any] = call.args.model_dump()
            case _:
                assert_never(call)

        handler = ToolRegistry.get_handler(call.name)
        if handler is None:
            raise ToolExecutionError(f"Unknown tool: {call.name}")

        ctx.log_action("tool_invoked", {"tool": call.name, "args": list(arguments.keys())})

        if "ctx" in inspect.signature(handler).parameters:
            result = handler(**arguments, ctx=ctx)
        else:
            result = handler(**arguments)
        if inspect.isawaitable(result):
            result = await result

        ctx.log_action("tool_completed", {"tool": call.name})
        return result
