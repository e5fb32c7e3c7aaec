"""Domain models for the query agent."""

from querypilot.models.agent import (
    AgentError,
    AgentInput,
    AgentLoopExceeded,
    AgentMetadata,
    AgentOutput,
    ChartParseError,
    LLMError,
    ReadOnlyViolationError,
    SchemaUnavailableError,
    SQLExecutionError,
    ToolCallValidationError,
    ValidationError,
)
from querypilot.models.plan import (
    AgentAnswer,
    ChartSpec,
    ChartType,
    ConversationContext,
    ExecuteSQLArgs,
    ExecuteSQLCall,
    PlanStep,
    PlanStepEvent,
    QueryExecution,
    QueryPlan,
    ToolCall,
)
from querypilot.models.schema import (
    ColumnSchema,
    SchemaSearchResult,
    SimilarTable,
    SQLResult,
    TableSchema,
)

__all__ = [
    # Agent base
    "AgentInput",
    "AgentOutput",
    "AgentMetadata",
    # Errors
    "AgentError",
    "AgentLoopExceeded",
    "ChartParseError",
    "LLMError",
    "ReadOnlyViolationError",
    "SchemaUnavailableError",
    "SQLExecutionError",
    "ToolCallValidationError",
    "ValidationError",
    # Plan
    "AgentAnswer",
    "ChartSpec",
    "ChartType",
    "ConversationContext",
    "ExecuteSQLArgs",
    "ExecuteSQLCall",
    "PlanStep",
    "PlanStepEvent",
    "QueryExecution",
    "QueryPlan",
    "ToolCall",
    # Schema
    "ColumnSchema",
    "SchemaSearchResult",
    "SimilarTable",
    "SQLResult",
    "TableSchema",
]
