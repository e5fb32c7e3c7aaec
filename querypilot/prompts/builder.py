"""
Prompt Builder

Renders the system instruction for the tool-calling agent and turns the
conversation history into model messages.
"""

import json
import logging
from collections.abc import Sequence

from querypilot.llm.models import LLMMessage
from querypilot.models.plan import MAX_CHART_POINTS, ConversationContext
from querypilot.models.schema import TableSchema
from querypilot.prompts.loader import PromptLoader
from querypilot.sql.dialects import resolve_default_schema, row_limit_syntax

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 5


def schema_to_json(tables: Sequence[TableSchema]) -> str:
    """Serialize candidate tables for embedding into a prompt (indent 2)."""
    return json.dumps([table.as_prompt_dict() for table in tables], indent=2, default=str)


def cap_history(
    history: Sequence[ConversationContext] | None, limit: int = DEFAULT_HISTORY_LIMIT
) -> list[ConversationContext]:
    """Keep the most recent ``limit`` exchanges."""
    if not history or limit <= 0:
        return []
    return list(history)[-limit:]


class PromptBuilder:
    """Builds the agent's system instruction and message list."""

    def __init__(
        self,
        loader: PromptLoader | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        max_chart_points: int = MAX_CHART_POINTS,
    ):
        self.prompts = loader or PromptLoader()
        self.history_limit = history_limit
        self.max_chart_points = max_chart_points

    def build_system_instruction(
        self,
        tables: Sequence[TableSchema],
        database_type: str,
        database_name: str | None = None,
    ) -> str:
        default_schema = resolve_default_schema(database_type, database_name)
        instruction = self.prompts.render(
            "system/agent.md",
            database_type=database_type,
            default_schema=default_schema,
            table_count=len(tables),
            schema_json=schema_to_json(tables),
            row_limit_example=row_limit_syntax(database_type),
            max_chart_points=self.max_chart_points,
        )
        logger.debug(
            "Built system instruction",
            extra={
                "database_type": database_type,
                "default_schema": default_schema,
                "tables": len(tables),
                "chars": len(instruction),
            },
        )
        return instruction

    def build_messages(
        self,
        question: str,
        history: Sequence[ConversationContext] | None = None,
        system_instruction: str | None = None,
    ) -> list[LLMMessage]:
        """
        Build the message list for the first model turn.

        Each prior exchange becomes a user turn (question) followed by an
        assistant turn (answer); the current question is the last user turn.
        Empty questions or answers in history are skipped.
        """
        messages: list[LLMMessage] = []
        if system_instruction:
            messages.append(LLMMessage(role="system", content=system_instruction))

        for exchange in cap_history(history, self.history_limit):
            if exchange.question:
                messages.append(LLMMessage(role="user", content=exchange.question))
            if exchange.answer:
                messages.append(LLMMessage(role="assistant", content=exchange.answer))

        messages.append(LLMMessage(role="user", content=question))
        return messages
