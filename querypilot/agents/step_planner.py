"""
Step Plan Agent

Alternative to the tool-calling loop: one model call writes an ordered,
dependency-annotated list of SQL steps up front, the steps are executed in
dependency order, and the remaining steps are revised against the results
at chosen points ("refinement"). The final answer is written by the
answer synthesis agent from the executed queries.

The scheduling and refinement rules are plain functions so they can be
reasoned about (and tested) without a model.
"""

import json
import logging
from collections.abc import Iterable
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from querypilot.agents.base import BaseAgent
from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.models import LLMMessage, LLMRequest
from querypilot.models.agent import AgentError, AgentInput, AgentOutput, LLMError, ValidationError
from querypilot.models.plan import ExecuteSQLArgs, ExecuteSQLCall, PlanStep, QueryPlan
from querypilot.models.schema import TableSchema
from querypilot.pipeline.events import PlanEventEmitter
from querypilot.prompts.builder import cap_history, schema_to_json
from querypilot.prompts.loader import PromptLoader
from querypilot.sql.dialects import resolve_default_schema, row_limit_syntax
from querypilot.sql.repair import ErrorClassifier
from querypilot.tools import ToolContext, ToolExecutor, initialize_tools

logger = logging.getLogger(__name__)

REMOVED_MARKER = "REMOVED"
LARGE_RESULT_ROWS = 1000


class PlanRefinement(BaseModel):
    """Model verdict on the remaining steps."""

    should_refine: bool = Field(
        default=False, validation_alias=AliasChoices("should_refine", "shouldRefine")
    )
    reasoning: str = ""
    new_steps: list[dict[str, Any]] = Field(
        default_factory=list, validation_alias=AliasChoices("new_steps", "newSteps")
    )
    modified_steps: list[dict[str, Any]] = Field(
        default_factory=list, validation_alias=AliasChoices("modified_steps", "modifiedSteps")
    )

    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Scheduling and refinement rules
# ============================================================================


def next_eligible_step(steps: list[PlanStep], executed_step_ids: set[str]) -> PlanStep | None:
    """First pending step whose dependencies have all been executed."""
    for step in steps:
        if step.status != "pending":
            continue
        if all(dep in executed_step_ids for dep in step.depends_on):
            return step
    return None


def skip_unreachable(steps: list[PlanStep]) -> list[str]:
    """Mark every still-pending step skipped; returns their ids."""
    skipped = []
    for step in steps:
        if step.status == "pending":
            step.status = "skipped"
            skipped.append(step.id)
    return skipped


def should_refine(
    step_index: int,
    row_count: int | None,
    is_last: bool,
    large_result_rows: int = LARGE_RESULT_ROWS,
) -> bool:
    """
    Refine after every second executed step, or right away when a step
    returned no rows or more than ``large_result_rows``; never after the
    last step.
    """
    if is_last:
        return False
    if (step_index + 1) % 2 == 0:
        return True
    return row_count is not None and (row_count == 0 or row_count > large_result_rows)


def marks_removal(modification: dict[str, Any]) -> bool:
    """A modification removes its step via an empty/REMOVED sql or a "removed" description."""
    if "sql" in modification:
        sql = str(modification.get("sql") or "").strip()
        if not sql or sql.upper() == REMOVED_MARKER:
            return True
    return "removed" in str(modification.get("description") or "").lower()


def apply_refinement(
    steps: list[PlanStep],
    refinement: PlanRefinement,
    executed_step_ids: Iterable[str],
) -> list[PlanStep]:
    """
    Return the plan with ``refinement`` applied.

    Only pending, not yet executed steps can be modified or removed; removed
    steps become ``skipped`` and their ids are dropped from every other
    step's ``depends_on``. New steps whose id already exists are ignored.
    """
    if not refinement.should_refine:
        return steps

    executed = set(executed_step_ids)
    refined = [step.model_copy(deep=True) for step in steps]
    by_id = {step.id: step for step in refined}
    removed: set[str] = set()

    for modification in refinement.modified_steps:
        step = by_id.get(str(modification.get("id", "")))
        if step is None or step.status != "pending" or step.id in executed:
            continue
        if marks_removal(modification):
            step.status = "skipped"
            step.reasoning = refinement.reasoning or step.reasoning
            removed.add(step.id)
            continue
        updates = {
            key: modification[key]
            for key in ("description", "sql", "type", "reasoning")
            if modification.get(key) is not None
        }
        dependencies = modification.get("dependencies", modification.get("depends_on"))
        merged = PlanStep.model_validate(
            {
                **step.model_dump(),
                **updates,
                "depends_on": dependencies if dependencies is not None else step.depends_on,
            }
        )
        by_id[step.id] = merged
        refined[refined.index(step)] = merged

    for raw in refinement.new_steps:
        try:
            new_step = PlanStep.model_validate(
                {**raw, "id": str(raw.get("id") or ""), "status": "pending"}
            )
        except PydanticValidationError:
            logger.warning("Ignoring malformed refinement step", extra={"step": raw})
            continue
        if not new_step.id or new_step.id in by_id:
            continue
        by_id[new_step.id] = new_step
        refined.append(new_step)

    if removed:
        for step in refined:
            step.depends_on = [dep for dep in step.depends_on if dep not in removed]
    return refined


def _extract_json(content: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        start = content.find("{")
        end = content.rfind("}") + 1
        if start == -1 or end <= start:
            return None
        try:
            parsed = json.loads(content[start:end])
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


# ============================================================================
# Agent
# ============================================================================


class StepPlanAgent(BaseAgent):
    """
    Plan-then-execute strategy.

    Input context keys:
        plan: QueryPlan to record executions into (mutated in place)
        executor: async callable running one SQL statement
        tables: list[TableSchema] from schema search
        database_name: optional, used for MySQL default-schema repairs

    Output data:
        steps: final list of PlanStep (as dicts)
        refinements: number of refinements applied
    """

    def __init__(
        self,
        llm_provider: BaseLLMProvider,
        max_plan_steps: int = 8,
        max_sql_retries: int = 2,
        sql_timeout: float | None = None,
        sql_retry_backoff: float = 0.0,
        read_only_guard: bool = True,
        large_result_rows: int = LARGE_RESULT_ROWS,
        history_limit: int = 5,
        model_timeout: float | None = None,
        classifier: ErrorClassifier | None = None,
        emitter: PlanEventEmitter | None = None,
        loader: PromptLoader | None = None,
    ):
        super().__init__(
            name="StepPlanAgent",
            llm_provider=llm_provider,
            max_retries=1,
            model_timeout=model_timeout,
        )
        self.max_plan_steps = max_plan_steps
        self.max_sql_retries = max_sql_retries
        self.sql_timeout = sql_timeout
        self.sql_retry_backoff = sql_retry_backoff
        self.read_only_guard = read_only_guard
        self.large_result_rows = large_result_rows
        self.history_limit = history_limit
        self.classifier = classifier or ErrorClassifier()
        self.emitter = emitter
        self.prompts = loader or PromptLoader()
        self.tool_executor = ToolExecutor()
        initialize_tools()

    async def execute(self, input: AgentInput) -> AgentOutput:
        plan: QueryPlan | None = input.context.get("plan")
        executor = input.context.get("executor")
        if plan is None or executor is None:
            raise ValidationError(
                self.name, "StepPlanAgent needs 'plan' and 'executor' in context"
            )
        tables: list[TableSchema] = input.context.get("tables") or []
        database_name: str | None = input.context.get("database_name")

        steps = await self._generate_steps(input, plan, tables, database_name)
        if self.emitter is not None:
            await self.emitter.emit_plan_generated(plan.id, steps)

        tool_ctx = ToolContext(
            plan_id=plan.id,
            executor=executor,
            database_type=plan.database_type,
            database_name=database_name,
            max_retries=self.max_sql_retries,
            sql_timeout=self.sql_timeout,
            retry_backoff=self.sql_retry_backoff,
            read_only_guard=self.read_only_guard,
            classifier=self.classifier,
        )

        executed_ids: set[str] = set()
        executed_count = 0
        refinements = 0

        while (step := next_eligible_step(steps, executed_ids)) is not None:
            if not step.sql:
                # Analysis steps without SQL are answered during synthesis
                step.status = "completed"
                executed_ids.add(step.id)
                continue

            await self._run_step(step, plan, tool_ctx)
            executed_ids.add(step.id)

            is_last = next_eligible_step(steps, executed_ids) is None
            if should_refine(executed_count, step.row_count, is_last, self.large_result_rows):
                refined = await self._refine(plan, steps, executed_ids)
                if refined is not steps:
                    steps = refined
                    refinements += 1
            executed_count += 1

        skipped = skip_unreachable(steps)
        if skipped:
            logger.info(
                f"Skipped {len(skipped)} step(s) with unmet dependencies",
                extra={"agent": self.name, "plan_id": plan.id, "steps": skipped},
            )

        return AgentOutput(
            success=True,
            data={
                "steps": [step.model_dump() for step in steps],
                "refinements": refinements,
            },
            metadata=self.metadata,
        )

    async def _generate_steps(
        self,
        input: AgentInput,
        plan: QueryPlan,
        tables: list[TableSchema],
        database_name: str | None,
    ) -> list[PlanStep]:
        prompt = self.prompts.render(
            "agents/step_plan.md",
            question=input.query,
            database_type=plan.database_type,
            default_schema=resolve_default_schema(plan.database_type, database_name),
            schema_json=schema_to_json(tables),
            history=cap_history(input.conversation_history, self.history_limit),
            row_limit_example=row_limit_syntax(plan.database_type),
            max_steps=self.max_plan_steps,
        )
        response = await self._generate(
            LLMRequest(messages=[LLMMessage(role="user", content=prompt)], temperature=0.0)
        )

        data = _extract_json(response.content)
        raw_steps = (data or {}).get("steps")
        if not isinstance(raw_steps, list) or not raw_steps:
            raise LLMError(
                self.name,
                "Model did not return a step plan",
                context={"response": response.content[:500]},
            )

        steps: list[PlanStep] = []
        seen: set[str] = set()
        for index, raw in enumerate(raw_steps[: self.max_plan_steps], start=1):
            if not isinstance(raw, dict):
                continue
            try:
                step = PlanStep.model_validate(
                    {**raw, "id": str(raw.get("id") or f"step_{index}"), "status": "pending"}
                )
            except PydanticValidationError:
                logger.warning("Ignoring malformed plan step", extra={"step": raw})
                continue
            if step.id in seen:
                continue
            seen.add(step.id)
            steps.append(step)

        logger.info(
            f"Generated plan with {len(steps)} step(s)",
            extra={"agent": self.name, "plan_id": plan.id, "intent": (data or {}).get("intent")},
        )
        return steps

    async def _run_step(self, step: PlanStep, plan: QueryPlan, ctx: ToolContext) -> None:
        step.status = "running"
        await self._emit("step_started", plan, step)

        call = ExecuteSQLCall(
            id=step.id, args=ExecuteSQLArgs(sql=step.sql or "", purpose=step.description)
        )
        execution = await self.tool_executor.execute(call, ctx)
        plan.queries.append(execution)

        step.sql = execution.sql
        step.execution_time = execution.execution_time
        if execution.succeeded:
            step.status = "completed"
            step.row_count = execution.row_count
            await self._emit("step_completed", plan, step)
        else:
            step.status = "error"
            step.error = execution.error
            await self._emit("step_error", plan, step, error=execution.error)

    async def _refine(
        self, plan: QueryPlan, steps: list[PlanStep], executed_ids: set[str]
    ) -> list[PlanStep]:
        """Ask the model to revise pending steps; any failure keeps the plan unchanged."""
        context = [
            {
                "step": step.description,
                "result_summary": (
                    f"{step.row_count} rows"
                    if step.status == "completed"
                    else f"error: {step.error}"
                ),
            }
            for step in steps
            if step.id in executed_ids and step.sql
        ]
        prompt = self.prompts.render(
            "agents/plan_refinement.md",
            question=plan.question,
            steps_json=json.dumps([step.model_dump(exclude_none=True) for step in steps], indent=2),
            context_json=json.dumps(context, indent=2),
        )
        try:
            response = await self._generate(
                LLMRequest(messages=[LLMMessage(role="user", content=prompt)], temperature=0.0)
            )
            refinement = PlanRefinement.model_validate(_extract_json(response.content) or {})
        except (AgentError, PydanticValidationError) as exc:
            logger.warning(
                f"Plan refinement failed, keeping plan: {exc}",
                extra={"agent": self.name, "plan_id": plan.id},
            )
            return steps

        if not refinement.should_refine:
            return steps
        logger.info(
            "Refining plan",
            extra={
                "agent": self.name,
                "plan_id": plan.id,
                "reasoning": refinement.reasoning,
                "new_steps": len(refinement.new_steps),
                "modified_steps": len(refinement.modified_steps),
            },
        )
        return apply_refinement(steps, refinement, executed_ids)

    async def _emit(
        self, event_type: str, plan: QueryPlan, step: PlanStep, error: str | None = None
    ) -> None:
        if self.emitter is not None:
            await self.emitter.emit_step(event_type, plan.id, step.model_copy(), error=error)
