"""Tool system base types and decorator."""

from __future__ import annotations

import inspect
import logging
import types
from collections.abc import Callable
from typing import Any, Literal, Union, get_args, get_origin, get_type_hints

from pydantic import BaseModel, ConfigDict, Field

from querypilot.llm.models import LLMToolDeclaration
from querypilot.sql.adapter import SQLExecutor
from querypilot.sql.repair import ErrorClassifier

logger = logging.getLogger(__name__)
NONE_TYPE = type(None)


class ToolDefinition(BaseModel):
    name: str
    description: str
    parameters_schema: dict[str, Any]

    def to_declaration(self) -> LLMToolDeclaration:
        return LLMToolDeclaration(
            name=self.name,
            description=self.description,
            parameters=self.parameters_schema,
        )


class ToolContext(BaseModel):
    """Per-request state handed to tool handlers (never shown to the model)."""

    plan_id: str
    executor: SQLExecutor
    database_type: str
    database_name: str | None = None
    max_retries: int = 2
    sql_timeout: float | None = None
    retry_backoff: float = 0.0
    read_only_guard: bool = True
    classifier: ErrorClassifier = Field(default_factory=ErrorClassifier)
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def log_action(self, action: str, metadata: dict[str, Any]) -> None:
        logger.info(
            "tool_action",
            extra={
                "plan_id": self.plan_id,
                "action": action,
                "metadata": metadata,
            },
        )


def _extract_parameters_schema(
    func: Callable[..., Any], descriptions: dict[str, str] | None = None
) -> dict[str, Any]:
    signature = inspect.signature(func)
    type_hints = get_type_hints(func, include_extras=True)
    descriptions = descriptions or {}
    properties: dict[str, Any] = {}
    required: list[str] = []

    for name, param in signature.parameters.items():
        if name in ("ctx", "context"):
            continue
        resolved_annotation = type_hints.get(name, param.annotation)
        param_schema = _annotation_to_json_schema(resolved_annotation)
        if name in descriptions:
            param_schema["description"] = descriptions[name]
        if param.default is inspect.Parameter.empty:
            required.append(name)
        elif param.default is not None:
            param_schema["default"] = param.default
        properties[name] = param_schema

    return {
        "type": "object",
        "properties": properties,
        "required": required,
    }


def _annotation_to_json_schema(annotation: Any) -> dict[str, Any]:
    if annotation is inspect.Parameter.empty or annotation is Any:
        return {}

    origin = get_origin(annotation)
    if origin is not None:
        return _origin_to_schema(origin, get_args(annotation))

    if annotation is bool:
        return {"type": "boolean"}
    if annotation is int:
        return {"type": "integer"}
    if annotation is float:
        return {"type": "number"}
    if annotation is str:
        return {"type": "string"}
    if annotation in (list, tuple, set, frozenset):
        return {"type": "array", "items": {"type": "string"}}

    return {"type": "string"}


def _origin_to_schema(origin: Any, args: tuple[Any, ...]) -> dict[str, Any]:
    if origin is Literal:
        values = list(args)
        schema: dict[str, Any] = {"enum": values}
        if values and all(isinstance(value, str) for value in values):
            schema["type"] = "string"
        return schema

    if origin in (list, tuple, set, frozenset):
        item_schema = _annotation_to_json_schema(args[0]) if args else {"type": "string"}
        return {"type": "array", "items": item_schema}

    if origin in (Union, types.UnionType):
        # Optional[X] is declared as X; the model may simply omit it
        non_none = [arg for arg in args if arg is not NONE_TYPE]
        if len(non_none) == 1:
            return _annotation_to_json_schema(non_none[0])
        return {"type": "string"}

    return _annotation_to_json_schema(origin)


def tool(
    name: str,
    description: str,
    parameter_descriptions: dict[str, str] | None = None,
):
    """Register a coroutine as a model-callable tool; its signature becomes the schema."""

    def decorator(func: Callable[..., Any]):
        from querypilot.tools.registry import ToolRegistry

        tool_def = ToolDefinition(
            name=name,
            description=description,
            parameters_schema=_extract_parameters_schema(func, parameter_descriptions),
        )
        ToolRegistry.register(tool_def, func)
        return func

    return decorator
