"""
Plan Models

The per-question record the query agent builds: conversation context in,
tool calls issued by the model, executed queries, chart hint and the
final answer out. Also the step/event models used for progress updates.
"""

import time
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from querypilot.models.schema import SQLResult

MAX_CHART_POINTS = 20

ChartType = Literal["bar", "pie", "line", "none"]
StepType = Literal["query", "analysis", "aggregation"]
StepStatus = Literal["pending", "running", "completed", "error", "skipped"]
PlanEventType = Literal[
    "plan_generated", "step_started", "step_completed", "step_error", "plan_completed"
]


class ConversationContext(BaseModel):
    """A prior question/answer exchange supplied by the caller (read-only)."""

    question: str
    answer: str
    sql_query: str | None = None
    key_findings: list[str] | None = None
    timestamp: datetime | None = None

    model_config = ConfigDict(frozen=True)


# ============================================================================
# Tool calls
# ============================================================================


class ExecuteSQLArgs(BaseModel):
    """Arguments of the ``execute_sql`` tool."""

    sql: str = Field(..., min_length=1, description="The SQL SELECT query to execute")
    purpose: str = Field(
        default="",
        description="Brief explanation of what this query retrieves and why",
    )

    model_config = ConfigDict(extra="ignore")

    @field_validator("sql")
    @classmethod
    def strip_sql(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("sql must not be blank")
        return stripped


class ExecuteSQLCall(BaseModel):
    """Model request to run one SQL statement."""

    name: Literal["execute_sql"] = "execute_sql"
    id: str | None = None
    args: ExecuteSQLArgs


# Every tool kind the agent can dispatch. Adding a member turns this into a
# Union discriminated on ``name``; dispatch sites end in ``assert_never``.
ToolCall = ExecuteSQLCall


# ============================================================================
# Query execution
# ============================================================================


class QueryExecution(BaseModel):
    """
    Record of one tool call's SQL and its outcome.

    Exactly one of ``result`` and ``error`` is set.
    """

    sql: str = Field(..., description="SQL that was last attempted (after any repair)")
    purpose: str = ""
    result: SQLResult | None = None
    error: str | None = None
    execution_time: float | None = Field(
        default=None, description="Milliseconds from the first attempt to completion"
    )
    row_count: int | None = None
    attempts: int = Field(default=1, ge=0)
    original_sql: str | None = Field(
        default=None, description="SQL as issued by the model, when a repair rewrote it"
    )

    @model_validator(mode="after")
    def check_outcome(self) -> "QueryExecution":
        if (self.result is None) == (self.error is None):
            raise ValueError("QueryExecution needs exactly one of result or error")
        return self

    @property
    def succeeded(self) -> bool:
        return self.result is not None


# ============================================================================
# Charts
# ============================================================================


class ChartSpec(BaseModel):
    """Structured visualization hint extracted from the answer."""

    type: ChartType
    data: list[dict[str, Any]] = Field(default_factory=list)
    x_axis_key: str | None = Field(default=None, alias="xAxisKey")
    y_axis_key: str | None = Field(default=None, alias="yAxisKey")
    description: str | None = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("data")
    @classmethod
    def clamp_points(cls, v: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return v[:MAX_CHART_POINTS]


# ============================================================================
# Plan
# ============================================================================


def new_plan_id() -> str:
    return f"plan_{int(time.time() * 1000)}"


class QueryPlan(BaseModel):
    """
    Per-invocation record of a question, its executed queries and its answer.

    ``query_count`` and ``final_sql`` are derived from ``queries`` so they
    can never disagree with it.
    """

    id: str = Field(default_factory=new_plan_id)
    question: str
    final_answer: str = ""
    chart_data: ChartSpec | None = None
    database_type: str
    total_execution_time: float = Field(default=0.0, description="Milliseconds")
    queries: list[QueryExecution] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def query_count(self) -> int:
        return len(self.queries)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def final_sql(self) -> str | None:
        return self.queries[-1].sql if self.queries else None

    @property
    def successful_queries(self) -> list[QueryExecution]:
        return [query for query in self.queries if query.succeeded]


class AgentAnswer(BaseModel):
    """Orchestrator return value: markdown answer plus the plan."""

    answer: str
    plan: QueryPlan


# ============================================================================
# Steps and progress events
# ============================================================================


class PlanStep(BaseModel):
    """One step of a plan, as shown to progress UIs and used by the step planner."""

    id: str
    type: StepType = "query"
    description: str = ""
    sql: str | None = None
    status: StepStatus = "pending"
    depends_on: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("depends_on", "dependsOn", "dependencies"),
    )
    reasoning: str | None = None
    row_count: int | None = None
    execution_time: float | None = None
    error: str | None = None

    @field_validator("depends_on", mode="before")
    @classmethod
    def normalize_depends_on(cls, v: Any) -> list[str]:
        if not v:
            return []
        if isinstance(v, (str, int)):
            v = [v]
        return [str(dep) for dep in v]

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> str:
        value = str(v or "query").lower()
        return value if value in ("query", "analysis", "aggregation") else "query"


class PlanStepEvent(BaseModel):
    """Progress notification for external sinks."""

    type: PlanEventType
    plan_id: str
    step: PlanStep | None = None
    steps: list[PlanStep] | None = None
    error: str | None = None
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
