"""
Query Pipeline Orchestrator

Entry point of the system: turns one natural-language question into an
``AgentAnswer`` (markdown answer plus the executed plan).

Flow:
    schema search -> (no schema? fixed answer)
                  -> prompt building -> QueryAgent tool loop   (strategy "agentic")
                  -> StepPlanAgent plan/execute/refine        (strategy "planned")
                  -> answer synthesis when no final text
                  -> chart extraction (+ deterministic fallback)

No exception crosses ``run`` except ``asyncio.CancelledError``: failures are
rendered as a markdown error answer and the partial plan is still returned.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Literal

from querypilot.agents.query_agent import QueryAgent
from querypilot.agents.step_planner import StepPlanAgent
from querypilot.agents.synthesis import (
    AnswerSynthesisAgent,
    build_error_answer,
    build_no_schema_answer,
)
from querypilot.config import Settings, get_settings
from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.factory import LLMProviderFactory
from querypilot.models.agent import AgentError, AgentInput, SchemaUnavailableError, ValidationError
from querypilot.models.plan import (
    AgentAnswer,
    ChartSpec,
    ConversationContext,
    PlanStepEvent,
    QueryPlan,
    new_plan_id,
)
from querypilot.models.schema import TableSchema
from querypilot.pipeline.events import PlanEventEmitter
from querypilot.prompts.builder import PromptBuilder
from querypilot.services.schema_search import SchemaRetriever, SchemaSearchClient
from querypilot.sql.adapter import SQLExecutor
from querypilot.sql.repair import ErrorClassifier
from querypilot.visualization import (
    ResultShape,
    build_chart_from_rows,
    decide_chart_type,
    extract_chart_data,
)

logger = logging.getLogger(__name__)

Strategy = Literal["agentic", "planned"]
EventCallback = Callable[[str, dict[str, Any]], Awaitable[None]]


class QueryPipeline:
    """
    Question-answering pipeline over one database.

    Usage:
        pipeline = QueryPipeline(schema_retriever=SchemaSearchClient(base_url))
        result = await pipeline.run(
            "Top 5 customers by revenue",
            database_id=1,
            database_type="postgresql",
            executor=HTTPSQLExecutor(base_url, database_id=1),
        )
        print(result.answer)
    """

    def __init__(
        self,
        schema_retriever: SchemaRetriever,
        llm_provider: BaseLLMProvider | None = None,
        synthesis_llm_provider: BaseLLMProvider | None = None,
        planner_llm_provider: BaseLLMProvider | None = None,
        settings: Settings | None = None,
        emitter: PlanEventEmitter | None = None,
        classifier: ErrorClassifier | None = None,
        prompt_builder: PromptBuilder | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            schema_retriever: Semantic schema search collaborator
            llm_provider: Model for the tool-calling loop (default: from settings)
            synthesis_llm_provider: Model for answer synthesis (default: llm_provider,
                or from settings)
            planner_llm_provider: Model for the planned strategy (same defaulting)
            settings: Settings override (default: get_settings())
            emitter: Event emitter shared with the caller
            classifier: SQL error classifier/repair registry
            prompt_builder: Prompt builder override
        """
        self.settings = settings or get_settings()
        self.schema_retriever = schema_retriever
        self.emitter = emitter or PlanEventEmitter()
        agent_config = self.settings.agent
        llm_config = self.settings.llm

        self.llm = llm_provider or LLMProviderFactory.create_agent_provider("agent", llm_config)
        self.synthesis_llm = synthesis_llm_provider or (
            llm_provider or LLMProviderFactory.create_agent_provider("synthesis", llm_config)
        )
        self._planner_llm = planner_llm_provider or llm_provider
        self.classifier = classifier or ErrorClassifier()
        self.prompt_builder = prompt_builder or PromptBuilder(
            history_limit=agent_config.history_limit,
            max_chart_points=agent_config.chart_max_points,
        )

        self.query_agent = QueryAgent(
            llm_provider=self.llm,
            max_iterations=agent_config.max_iterations,
            max_sql_retries=agent_config.max_sql_retries,
            sql_timeout=agent_config.sql_timeout,
            sql_retry_backoff=agent_config.sql_retry_backoff,
            read_only_guard=agent_config.read_only_guard,
            tool_result_max_rows=agent_config.tool_result_max_rows,
            model_timeout=agent_config.model_timeout,
            temperature=llm_config.temperature,
            classifier=self.classifier,
            emitter=self.emitter,
        )
        self.synthesis_agent = AnswerSynthesisAgent(
            llm_provider=self.synthesis_llm,
            temperature=agent_config.synthesis_temperature,
            sample_rows=agent_config.synthesis_sample_rows,
            max_chart_points=agent_config.chart_max_points,
            model_timeout=agent_config.model_timeout,
        )
        self._step_planner: StepPlanAgent | None = None

        logger.info(
            "QueryPipeline initialized",
            extra={
                "strategy": agent_config.strategy,
                "provider": self.llm.provider_name,
                "max_iterations": agent_config.max_iterations,
            },
        )

    @property
    def step_planner(self) -> StepPlanAgent:
        """Planned-strategy agent, built on first use."""
        if self._step_planner is None:
            agent_config = self.settings.agent
            planner_llm = self._planner_llm or LLMProviderFactory.create_agent_provider(
                "planner", self.settings.llm
            )
            self._step_planner = StepPlanAgent(
                llm_provider=planner_llm,
                max_plan_steps=agent_config.max_plan_steps,
                max_sql_retries=agent_config.max_sql_retries,
                sql_timeout=agent_config.sql_timeout,
                sql_retry_backoff=agent_config.sql_retry_backoff,
                read_only_guard=agent_config.read_only_guard,
                large_result_rows=agent_config.refinement_large_result,
                history_limit=agent_config.history_limit,
                model_timeout=agent_config.model_timeout,
                classifier=self.classifier,
                emitter=self.emitter,
            )
        return self._step_planner

    async def run(
        self,
        question: str,
        database_id: int | str,
        database_type: str,
        executor: SQLExecutor,
        conversation_history: Sequence[ConversationContext | dict[str, Any]] | None = None,
        database_name: str | None = None,
        deadline_seconds: float | None = None,
        strategy: Strategy | None = None,
        plan_id: str | None = None,
    ) -> AgentAnswer:
        """
        Answer one question.

        Args:
            question: Natural-language question
            database_id: Id known to the schema search service
            database_type: Dialect name (mssql, postgresql, mysql, ...)
            executor: Async callable running one SQL statement on that database
            conversation_history: Prior exchanges, most recent last
            database_name: Database name (MySQL default schema)
            deadline_seconds: Overall time budget for the invocation
            strategy: Override ``agent.strategy`` for this call
            plan_id: Plan id to use (default: generated)

        Returns:
            AgentAnswer with the chartdata block stripped from ``answer``
        """
        start = time.perf_counter()
        plan = QueryPlan(
            id=plan_id or new_plan_id(),
            question=question,
            database_type=database_type,
        )
        error_message: str | None = None

        try:
            if deadline_seconds is not None:
                async with asyncio.timeout(deadline_seconds):
                    answer = await self._answer(
                        plan, database_id, executor, conversation_history, database_name, strategy
                    )
            else:
                answer = await self._answer(
                    plan, database_id, executor, conversation_history, database_name, strategy
                )
        except AgentError as exc:
            error_message = exc.message
            logger.error(
                f"Pipeline failed: {exc.message}",
                extra={"plan_id": plan.id, "error": exc.to_dict()},
            )
            answer = build_error_answer(exc.message)
        except TimeoutError:
            error_message = f"Request timed out after {deadline_seconds}s"
            logger.error(error_message, extra={"plan_id": plan.id})
            answer = build_error_answer(error_message)
        except Exception as exc:
            error_message = str(exc) or type(exc).__name__
            logger.exception("Unexpected pipeline error", extra={"plan_id": plan.id})
            answer = build_error_answer(error_message)

        plan.final_answer = answer
        plan.total_execution_time = (time.perf_counter() - start) * 1000
        if not self.emitter.was_generated(plan.id):
            # Short-circuits and early failures still announce the (empty) plan
            await self.emitter.emit_plan_generated(plan.id, [])
        await self.emitter.emit_plan_completed(plan.id, error=error_message)

        logger.info(
            f"Pipeline complete in {plan.total_execution_time:.1f}ms",
            extra={
                "plan_id": plan.id,
                "queries": plan.query_count,
                "chart": plan.chart_data.type if plan.chart_data else None,
                "error": error_message,
            },
        )
        return AgentAnswer(answer=answer, plan=plan)

    async def run_with_streaming(
        self,
        question: str,
        database_id: int | str,
        database_type: str,
        executor: SQLExecutor,
        event_callback: EventCallback | None = None,
        **kwargs: Any,
    ) -> AgentAnswer:
        """
        Run the pipeline while forwarding this run's events to ``event_callback``.

        Args:
            event_callback: Async callback ``(event_type, event_data)``; event
                data is the JSON form of ``PlanStepEvent``
            **kwargs: Passed through to ``run``
        """
        plan_id = kwargs.pop("plan_id", None) or new_plan_id()
        unsubscribe = None

        if event_callback is not None:

            async def forward(event: PlanStepEvent) -> None:
                if event.plan_id == plan_id:
                    payload = event.model_dump(mode="json", exclude_none=True)
                    await event_callback(event.type, payload)

            unsubscribe = self.emitter.subscribe(forward)

        try:
            return await self.run(
                question, database_id, database_type, executor, plan_id=plan_id, **kwargs
            )
        finally:
            if unsubscribe is not None:
                unsubscribe()

    async def _answer(
        self,
        plan: QueryPlan,
        database_id: int | str,
        executor: SQLExecutor,
        conversation_history: Sequence[ConversationContext | dict[str, Any]] | None,
        database_name: str | None,
        strategy: Strategy | None,
    ) -> str:
        question = plan.question
        if not question or not question.strip():
            raise ValidationError("QueryPipeline", "Question must not be empty")

        agent_config = self.settings.agent
        search = await self.schema_retriever.search_similar_tables(
            database_id, question, agent_config.schema_search_limit
        )
        if not search.has_schema:
            unavailable = SchemaUnavailableError(
                "QueryPipeline",
                search.error or "No relevant tables found",
                context={"database_id": database_id},
            )
            logger.warning(
                f"No schema available: {unavailable.message}",
                extra={"plan_id": plan.id, "error": unavailable.to_dict()},
            )
            return build_no_schema_answer(question)

        tables = search.tables()
        agent_input = AgentInput(
            query=question,
            conversation_history=list(conversation_history or []),
            context={
                "plan": plan,
                "executor": executor,
                "tables": tables,
                "database_name": database_name,
            },
        )

        if (strategy or agent_config.strategy) == "planned":
            await self.step_planner(agent_input)
            final_text = ""
        else:
            final_text = await self._run_agentic(agent_input, plan, tables, database_name)

        chart_allowed = True
        if not final_text.strip():
            final_text, chart_allowed = await self.synthesis_agent.compose(
                question, plan.queries
            )

        answer, chart = extract_chart_data(final_text)
        # The deterministic summary never carries a chart
        plan.chart_data = self._reconcile_chart(plan, chart) if chart_allowed else None
        return answer

    async def _run_agentic(
        self,
        agent_input: AgentInput,
        plan: QueryPlan,
        tables: list[TableSchema],
        database_name: str | None,
    ) -> str:
        system_instruction = self.prompt_builder.build_system_instruction(
            tables, plan.database_type, database_name
        )
        agent_input.context["messages"] = self.prompt_builder.build_messages(
            agent_input.query, agent_input.conversation_history, system_instruction
        )
        await self.emitter.emit_plan_generated(plan.id, [])

        output = await self.query_agent(agent_input)
        return output.data.get("final_text", "")

    def _reconcile_chart(self, plan: QueryPlan, chart: ChartSpec | None) -> ChartSpec | None:
        """Fill in a chart from the last successful query when the model gave none."""
        if not self.settings.agent.chart_fallback_enabled:
            return chart

        successful = plan.successful_queries
        if not successful or successful[-1].result is None:
            return chart
        rows = successful[-1].result.data

        if chart is None:
            derived = build_chart_from_rows(
                plan.question, rows, max_points=self.settings.agent.chart_max_points
            )
            if derived is not None:
                logger.info(
                    f"Derived {derived.type} chart from query results",
                    extra={"plan_id": plan.id},
                )
            return derived

        suggested = decide_chart_type(plan.question, ResultShape.from_rows(rows))
        if suggested != chart.type:
            logger.debug(
                f"Model chose {chart.type} chart, result shape suggests {suggested}",
                extra={"plan_id": plan.id},
            )
        return chart


# ============================================================================
# Helper Functions
# ============================================================================


def create_pipeline(
    settings: Settings | None = None,
    emitter: PlanEventEmitter | None = None,
) -> QueryPipeline:
    """
    Create a QueryPipeline wired to the HTTP schema search service.

    Args:
        settings: Settings override (default: get_settings())
        emitter: Optional shared event emitter

    Returns:
        Initialized pipeline
    """
    config = settings or get_settings()
    retriever = SchemaSearchClient(
        base_url=config.services.api_base_url,
        timeout=config.services.http_timeout,
    )
    return QueryPipeline(schema_retriever=retriever, settings=config, emitter=emitter)
