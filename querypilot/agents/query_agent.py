"""
Query Agent

The tool-calling loop at the center of the pipeline. Each model turn gets
the system instruction, the conversation so far and the ``execute_sql``
declaration. When the model asks for tools, every call of the turn is
validated and executed concurrently, the results are fed back as one tool
message, and the loop continues; a turn without tool calls ends it.

    AWAITING_MODEL -> EXECUTING_TOOLS -> AWAITING_MODEL -> ... -> DONE
                                                             \\-> CAP_REACHED

The agent mutates the ``QueryPlan`` passed in ``input.context["plan"]``:
each batch's executions are appended as one contiguous block, in call
order, after the whole batch resolved.
"""

import asyncio
import json
import logging
from typing import Any

from querypilot.agents.base import BaseAgent
from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.models import LLMMessage, LLMRequest, LLMToolCall, LLMToolResult
from querypilot.models.agent import (
    AgentInput,
    AgentLoopExceeded,
    AgentOutput,
    ReadOnlyViolationError,
    SQLExecutionError,
    ToolCallValidationError,
    ValidationError,
)
from querypilot.models.plan import PlanStep, QueryExecution, QueryPlan
from querypilot.pipeline.events import PlanEventEmitter
from querypilot.sql.adapter import SQLExecutor
from querypilot.sql.repair import ErrorClassifier
from querypilot.tools import ToolContext, ToolExecutor, ToolRegistry, initialize_tools

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 5
FAILURE_SUGGESTION = "Try a different query or approach"


def success_payload(execution: QueryExecution, max_rows: int) -> dict[str, Any]:
    """Tool result for a successful execution; rows are clipped to ``max_rows``."""
    rows = execution.result.data if execution.result else []
    payload: dict[str, Any] = {
        # Round-trip so dates and decimals reach every provider as plain JSON
        "data": json.loads(json.dumps(rows[:max_rows], default=str)),
        "rowCount": execution.row_count,
        "executionTime": execution.execution_time,
    }
    if len(rows) > max_rows:
        payload["truncated"] = True
    return payload


def failure_payload(message: str) -> dict[str, Any]:
    return {"error": message, "suggestion": FAILURE_SUGGESTION}


class QueryAgent(BaseAgent):
    """
    Runs the bounded tool-calling loop for one question.

    Input context keys:
        plan: QueryPlan to record executions into (mutated in place)
        messages: list[LLMMessage] for the first turn (system, history, question)
        executor: async callable running one SQL statement
        database_name: optional, used for MySQL default-schema repairs

    Output data:
        final_text: the model's last text ("" when the cap was reached)
        iterations: model turns used
        cap_reached: whether the loop stopped on the iteration cap
    """

    def __init__(
        self,
        llm_provider: BaseLLMProvider,
        max_iterations: int = MAX_ITERATIONS,
        max_sql_retries: int = 2,
        sql_timeout: float | None = None,
        sql_retry_backoff: float = 0.0,
        read_only_guard: bool = True,
        tool_result_max_rows: int = 200,
        model_timeout: float | None = None,
        temperature: float | None = None,
        classifier: ErrorClassifier | None = None,
        emitter: PlanEventEmitter | None = None,
    ):
        super().__init__(
            name="QueryAgent",
            llm_provider=llm_provider,
            max_retries=0,
            model_timeout=model_timeout,
        )
        self.max_iterations = max_iterations
        self.max_sql_retries = max_sql_retries
        self.sql_timeout = sql_timeout
        self.sql_retry_backoff = sql_retry_backoff
        self.read_only_guard = read_only_guard
        self.tool_result_max_rows = tool_result_max_rows
        self.temperature = temperature
        self.classifier = classifier or ErrorClassifier()
        self.emitter = emitter
        self.tool_executor = ToolExecutor()
        initialize_tools()

    async def execute(self, input: AgentInput) -> AgentOutput:
        plan: QueryPlan | None = input.context.get("plan")
        executor: SQLExecutor | None = input.context.get("executor")
        if plan is None or executor is None:
            raise ValidationError(self.name, "QueryAgent needs 'plan' and 'executor' in context")

        messages: list[LLMMessage] = list(input.context.get("messages") or [])
        if not messages:
            messages = [LLMMessage(role="user", content=input.query)]

        tool_ctx = ToolContext(
            plan_id=plan.id,
            executor=executor,
            database_type=plan.database_type,
            database_name=input.context.get("database_name"),
            max_retries=self.max_sql_retries,
            sql_timeout=self.sql_timeout,
            retry_backoff=self.sql_retry_backoff,
            read_only_guard=self.read_only_guard,
            classifier=self.classifier,
        )
        declarations = ToolRegistry.declarations()

        final_text = ""
        iterations = 0
        cap_reached = False

        for iteration in range(self.max_iterations):
            iterations = iteration + 1
            response = await self._generate(
                LLMRequest(
                    messages=messages,
                    tools=declarations,
                    temperature=self.temperature,
                    metadata={"plan_id": plan.id, "iteration": iterations},
                )
            )

            if not response.tool_calls:
                final_text = response.content
                logger.info(
                    f"Model answered after {iterations} turn(s)",
                    extra={"agent": self.name, "plan_id": plan.id, "queries": plan.query_count},
                )
                break

            calls = self._with_call_ids(response.tool_calls, iteration)
            logger.info(
                f"Turn {iterations}: executing {len(calls)} tool call(s)",
                extra={"agent": self.name, "plan_id": plan.id, "iteration": iterations},
            )
            outcomes = await asyncio.gather(
                *(self._run_call(call, tool_ctx, plan) for call in calls)
            )

            messages.append(
                LLMMessage(role="assistant", content=response.content, tool_calls=calls)
            )
            messages.append(
                LLMMessage(role="tool", tool_results=[result for result, _ in outcomes])
            )
            plan.queries.extend(execution for _, execution in outcomes if execution is not None)
        else:
            cap_reached = True
            exceeded = AgentLoopExceeded(
                self.name, self.max_iterations, context={"plan_id": plan.id}
            )
            logger.warning(exceeded.message, extra={"error": exceeded.to_dict()})

        return AgentOutput(
            success=True,
            data={
                "final_text": final_text,
                "iterations": iterations,
                "cap_reached": cap_reached,
            },
            metadata=self.metadata,
        )

    @staticmethod
    def _with_call_ids(calls: list[LLMToolCall], iteration: int) -> list[LLMToolCall]:
        """Providers that do not issue call ids (Gemini) get stable synthetic ones."""
        return [
            call if call.id else call.model_copy(update={"id": f"call_{iteration}_{index}"})
            for index, call in enumerate(calls)
        ]

    async def _run_call(
        self, raw_call: LLMToolCall, ctx: ToolContext, plan: QueryPlan
    ) -> tuple[LLMToolResult, QueryExecution | None]:
        try:
            call = ToolRegistry.parse_call(raw_call, agent=self.name)
        except ToolCallValidationError as exc:
            logger.warning(
                f"Rejected tool call: {exc.message}",
                extra={"agent": self.name, "plan_id": plan.id, "tool": raw_call.name},
            )
            return (
                LLMToolResult(
                    call_id=raw_call.id,
                    name=raw_call.name,
                    response=failure_payload(exc.message),
                ),
                None,
            )

        step = PlanStep(
            id=call.id or raw_call.name,
            type="query",
            description=call.args.purpose,
            sql=call.args.sql,
            status="running",
        )
        await self._emit("step_started", plan, step)

        execution = await self.tool_executor.execute(call, ctx)

        if execution.succeeded:
            step = step.model_copy(
                update={
                    "status": "completed",
                    "sql": execution.sql,
                    "row_count": execution.row_count,
                    "execution_time": execution.execution_time,
                }
            )
            await self._emit("step_completed", plan, step)
            response = success_payload(execution, self.tool_result_max_rows)
        else:
            failure = self._failure_for(execution)
            logger.warning(
                f"Tool call failed: {failure.message}",
                extra={
                    "plan_id": plan.id,
                    "attempts": execution.attempts,
                    "error": failure.to_dict(),
                },
            )
            step = step.model_copy(
                update={
                    "status": "error",
                    "sql": execution.sql,
                    "execution_time": execution.execution_time,
                    "error": execution.error,
                }
            )
            await self._emit("step_error", plan, step, error=execution.error)
            response = failure_payload(failure.message)

        return LLMToolResult(call_id=call.id, name=call.name, response=response), execution

    def _failure_for(self, execution: QueryExecution) -> SQLExecutionError:
        message = execution.error or "Unknown error"
        if execution.attempts == 0:
            return ReadOnlyViolationError(self.name, message, sql=execution.sql)
        return SQLExecutionError(
            self.name,
            message,
            sql=execution.sql,
            context={"original_sql": execution.original_sql},
        )

    async def _emit(
        self, event_type: str, plan: QueryPlan, step: PlanStep, error: str | None = None
    ) -> None:
        if self.emitter is not None:
            await self.emitter.emit_step(event_type, plan.id, step, error=error)
