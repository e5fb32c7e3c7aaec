"""
Agent I/O Models

Pydantic models for agent inputs, outputs, and error handling.
All agents use these base models to ensure type safety and consistent
data structures throughout the system.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from querypilot.models.plan import ConversationContext


class AgentMetadata(BaseModel):
    """Metadata about agent execution."""

    agent_name: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    duration_ms: float | None = None
    llm_calls: int = 0
    tokens_used: int | None = None
    error: str | None = None

    model_config = ConfigDict(frozen=False)

    def mark_complete(self) -> None:
        """Mark execution as complete and calculate duration."""
        self.completed_at = datetime.now(UTC)
        if self.started_at:
            delta = self.completed_at - self.started_at
            self.duration_ms = delta.total_seconds() * 1000


class AgentInput(BaseModel):
    """
    Base input model for all agents.

    Each agent extends this with its specific input fields.
    """

    query: str = Field(..., description="User's natural language question", min_length=1)
    conversation_history: list[ConversationContext] = Field(
        default_factory=list, description="Previous exchanges in the conversation"
    )
    context: dict[str, Any] = Field(
        default_factory=dict, description="Additional context passed between agents"
    )


class AgentOutput(BaseModel):
    """
    Base output model for all agents.

    The metadata field tracks execution details for observability.
    """

    success: bool = Field(..., description="Whether the agent executed successfully")
    data: dict[str, Any] = Field(default_factory=dict, description="Agent-specific output data")
    metadata: AgentMetadata = Field(..., description="Execution metadata")


class AgentError(Exception):
    """
    Custom exception for agent execution errors.

    Attributes:
        agent: Name of the agent that raised the error
        message: Error description
        recoverable: Whether the caller can retry or continue
        context: Additional context for debugging
    """

    def __init__(
        self,
        agent: str,
        message: str,
        recoverable: bool = True,
        context: dict[str, Any] | None = None,
    ):
        self.agent = agent
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}
        super().__init__(f"[{agent}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/API responses."""
        return {
            "agent": self.agent,
            "message": self.message,
            "recoverable": self.recoverable,
            "context": self.context,
            "type": self.__class__.__name__,
        }


class ValidationError(AgentError):
    """Error during data validation (usually not recoverable)."""

    def __init__(self, agent: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(agent, message, recoverable=False, context=context)


class LLMError(AgentError):
    """Error during LLM API call (usually recoverable with retry)."""

    def __init__(self, agent: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(agent, message, recoverable=True, context=context)


class SchemaUnavailableError(AgentError):
    """Schema search returned nothing usable. Never retried."""

    def __init__(self, agent: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(agent, message, recoverable=False, context=context)


class SQLExecutionError(AgentError):
    """A single statement failed after all repair attempts.

    Recoverable: the failure is reported to the model, which may try
    different SQL on its next turn.
    """

    def __init__(
        self,
        agent: str,
        message: str,
        sql: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.sql = sql
        super().__init__(agent, message, recoverable=True, context=context)


class ReadOnlyViolationError(SQLExecutionError):
    """The read-only guard rejected a statement before execution."""


class ToolCallValidationError(AgentError):
    """A model-issued tool call had an unknown name or invalid arguments."""

    def __init__(self, agent: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(agent, message, recoverable=True, context=context)


class AgentLoopExceeded(AgentError):
    """The iteration cap was hit while the model still requested tools."""

    def __init__(self, agent: str, iterations: int, context: dict[str, Any] | None = None):
        self.iterations = iterations
        super().__init__(
            agent,
            f"Iteration limit reached after {iterations} model turns",
            recoverable=True,
            context=context,
        )


class ChartParseError(AgentError):
    """A ``chartdata`` block could not be parsed."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__("ChartExtractor", message, recoverable=True, context=context)
