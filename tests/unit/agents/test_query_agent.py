"""
Unit tests for QueryAgent

Tests the tool-calling loop including:
- Direct answers without tool calls
- Concurrent batches recorded in call order
- Success and failure tool payloads
- Invalid tool calls
- The iteration cap
- Step events
"""

import asyncio
from typing import Any

import pytest

from querypilot.agents.query_agent import (
    FAILURE_SUGGESTION,
    MAX_ITERATIONS,
    QueryAgent,
    failure_payload,
    success_payload,
)
from querypilot.llm.models import LLMMessage
from querypilot.models.agent import AgentInput, LLMError, ValidationError
from querypilot.models.plan import QueryExecution, QueryPlan
from querypilot.models.schema import SQLResult
from querypilot.pipeline.events import PlanEventEmitter


@pytest.fixture
def plan() -> QueryPlan:
    return QueryPlan(id="plan_test", question="How are sales?", database_type="mssql")


@pytest.fixture
def events():
    emitter = PlanEventEmitter()
    received = []
    emitter.subscribe(received.append)
    return emitter, received


def _input(plan: QueryPlan, executor: Any, **context: Any) -> AgentInput:
    return AgentInput(
        query=plan.question,
        context={"plan": plan, "executor": executor, **context},
    )


# ============================================================================
# Payloads
# ============================================================================


class TestPayloads:
    def test_success_payload(self):
        execution = QueryExecution(
            sql="SELECT 1",
            result=SQLResult(data=[{"n": 1}]),
            row_count=1,
            execution_time=5.5,
        )
        assert success_payload(execution, 200) == {
            "data": [{"n": 1}],
            "rowCount": 1,
            "executionTime": 5.5,
        }

    def test_success_payload_truncated(self):
        rows = [{"n": i} for i in range(5)]
        execution = QueryExecution(
            sql="SELECT n", result=SQLResult(data=rows), row_count=5, execution_time=1.0
        )

        payload = success_payload(execution, 2)

        assert payload["data"] == [{"n": 0}, {"n": 1}]
        assert payload["rowCount"] == 5
        assert payload["truncated"] is True

    def test_success_payload_json_safe(self):
        from datetime import date
        from decimal import Decimal

        execution = QueryExecution(
            sql="SELECT d",
            result=SQLResult(data=[{"d": date(2024, 1, 31), "amount": Decimal("9.99")}]),
            row_count=1,
            execution_time=1.0,
        )

        assert success_payload(execution, 10)["data"] == [{"d": "2024-01-31", "amount": "9.99"}]

    def test_failure_payload(self):
        assert failure_payload("Invalid column name 'x'") == {
            "error": "Invalid column name 'x'",
            "suggestion": FAILURE_SUGGESTION,
        }


# ============================================================================
# Loop behaviour
# ============================================================================


class TestDirectAnswer:
    @pytest.mark.asyncio
    async def test_answer_without_tools(self, scripted_llm, llm_response, plan, row_executor):
        llm = scripted_llm([llm_response("The database holds sales and customer tables.")])
        agent = QueryAgent(llm_provider=llm)
        executor = row_executor([])

        output = await agent(_input(plan, executor))

        assert output.data == {
            "final_text": "The database holds sales and customer tables.",
            "iterations": 1,
            "cap_reached": False,
        }
        assert plan.queries == []
        executor.assert_not_awaited()
        request = llm.requests[0]
        assert [tool.name for tool in request.tools] == ["execute_sql"]
        assert request.metadata["plan_id"] == "plan_test"

    @pytest.mark.asyncio
    async def test_prebuilt_messages_used(self, scripted_llm, llm_response, plan, row_executor):
        llm = scripted_llm([llm_response("ok")])
        messages = [
            LLMMessage(role="system", content="rules"),
            LLMMessage(role="user", content="How are sales?"),
        ]

        await QueryAgent(llm_provider=llm)(_input(plan, row_executor([]), messages=messages))

        assert [msg.role for msg in llm.requests[0].messages] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_missing_context(self, scripted_llm, plan):
        agent = QueryAgent(llm_provider=scripted_llm([]))

        with pytest.raises(ValidationError, match="'plan' and 'executor'"):
            await agent(AgentInput(query="q", context={"plan": plan}))

    @pytest.mark.asyncio
    async def test_model_failure_propagates(self, scripted_llm, plan, row_executor):
        agent = QueryAgent(llm_provider=scripted_llm([RuntimeError("503 Service Unavailable")]))

        with pytest.raises(LLMError):
            await agent(_input(plan, row_executor([])))


class TestToolBatches:
    @pytest.mark.asyncio
    async def test_batch_recorded_in_call_order(
        self, scripted_llm, llm_response, sql_call, plan, events
    ):
        """The slower first call still comes first in plan.queries."""

        async def executor(sql: str) -> SQLResult:
            if "customers" in sql:
                await asyncio.sleep(0.05)
                return SQLResult(data=[{"customers": 120}])
            return SQLResult(data=[{"orders": 900}])

        emitter, received = events
        llm = scripted_llm(
            [
                llm_response(
                    tool_calls=[
                        sql_call("SELECT COUNT(*) AS customers FROM dbo.customers", "customers"),
                        sql_call("SELECT COUNT(*) AS orders FROM dbo.orders", "orders"),
                    ]
                ),
                llm_response("120 customers placed 900 orders."),
            ]
        )
        agent = QueryAgent(llm_provider=llm, emitter=emitter)

        output = await agent(_input(plan, executor))

        assert output.data["final_text"] == "120 customers placed 900 orders."
        assert output.data["iterations"] == 2
        assert [query.purpose for query in plan.queries] == ["customers", "orders"]
        assert plan.final_sql == "SELECT COUNT(*) AS orders FROM dbo.orders"

        second_turn = llm.requests[1].messages
        assistant, tool_turn = second_turn[-2], second_turn[-1]
        assert assistant.role == "assistant"
        assert [call.id for call in assistant.tool_calls] == ["call_0_0", "call_0_1"]
        assert tool_turn.role == "tool"
        assert [result.call_id for result in tool_turn.tool_results] == ["call_0_0", "call_0_1"]
        assert tool_turn.tool_results[0].response["data"] == [{"customers": 120}]
        assert tool_turn.tool_results[0].response["rowCount"] == 1

        for call_id in ("call_0_0", "call_0_1"):
            kinds = [event.type for event in received if event.step.id == call_id]
            assert kinds == ["step_started", "step_completed"]

    @pytest.mark.asyncio
    async def test_three_calls_recorded_before_next_model_turn(
        self, scripted_llm, llm_response, sql_call, plan, row_executor
    ):
        turns = [
            llm_response(
                tool_calls=[sql_call(f"SELECT {n} AS n", f"query {n}") for n in (1, 2, 3)]
            ),
            llm_response("Three results."),
        ]
        recorded_at_turn: list[int] = []

        async def generate(request):
            recorded_at_turn.append(len(plan.queries))
            return turns[len(recorded_at_turn) - 1]

        llm = scripted_llm([])
        llm.generate.side_effect = generate

        output = await QueryAgent(llm_provider=llm)(_input(plan, row_executor([{"n": 1}])))

        assert output.data["final_text"] == "Three results."
        assert recorded_at_turn == [0, 3]
        assert [query.purpose for query in plan.queries] == ["query 1", "query 2", "query 3"]
        assert [query.sql for query in plan.queries] == [
            "SELECT 1 AS n",
            "SELECT 2 AS n",
            "SELECT 3 AS n",
        ]
        tool_turn = llm.requests[1].messages[-1]
        assert [result.call_id for result in tool_turn.tool_results] == [
            "call_0_0",
            "call_0_1",
            "call_0_2",
        ]

    @pytest.mark.asyncio
    async def test_provider_call_ids_kept(
        self, scripted_llm, llm_response, sql_call, plan, row_executor
    ):
        llm = scripted_llm(
            [
                llm_response(tool_calls=[sql_call("SELECT 1", call_id="toolu_01")]),
                llm_response("done"),
            ]
        )

        await QueryAgent(llm_provider=llm)(_input(plan, row_executor([{"n": 1}])))

        assert llm.requests[1].messages[-1].tool_results[0].call_id == "toolu_01"

    @pytest.mark.asyncio
    async def test_failed_query_reported_to_model(
        self, scripted_llm, llm_response, sql_call, plan, row_executor, events
    ):
        emitter, received = events
        executor = row_executor(side_effect=Exception("Invalid column name 'revenu'"))
        llm = scripted_llm(
            [
                llm_response(tool_calls=[sql_call("SELECT revenu FROM dbo.sales")]),
                llm_response("I could not find a revenue column."),
            ]
        )
        agent = QueryAgent(llm_provider=llm, max_sql_retries=0, emitter=emitter)

        await agent(_input(plan, executor))

        response = llm.requests[1].messages[-1].tool_results[0].response
        assert response == {
            "error": "Invalid column name 'revenu'",
            "suggestion": "Try a different query or approach",
        }
        assert plan.query_count == 1
        assert plan.queries[0].error == "Invalid column name 'revenu'"
        assert [event.type for event in received] == ["step_started", "step_error"]
        assert received[-1].error == "Invalid column name 'revenu'"

    @pytest.mark.asyncio
    async def test_guard_rejection_reported(
        self, scripted_llm, llm_response, sql_call, plan, row_executor
    ):
        executor = row_executor([])
        llm = scripted_llm(
            [
                llm_response(tool_calls=[sql_call("DELETE FROM dbo.sales")]),
                llm_response("I can only read data."),
            ]
        )

        await QueryAgent(llm_provider=llm)(_input(plan, executor))

        response = llm.requests[1].messages[-1].tool_results[0].response
        assert response["error"].startswith("Rejected before execution")
        assert plan.queries[0].attempts == 0
        executor.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_call_gets_failure_without_execution(
        self, scripted_llm, llm_response, sql_call, plan, row_executor, events
    ):
        from querypilot.llm.models import LLMToolCall

        emitter, received = events
        executor = row_executor([{"n": 1}])
        llm = scripted_llm(
            [
                llm_response(
                    tool_calls=[
                        LLMToolCall(name="execute_sql", arguments={"purpose": "no sql"}),
                        sql_call("SELECT 1 AS n"),
                    ]
                ),
                llm_response("done"),
            ]
        )

        await QueryAgent(llm_provider=llm, emitter=emitter)(_input(plan, executor))

        results = llm.requests[1].messages[-1].tool_results
        assert results[0].call_id == "call_0_0"
        assert results[0].response["suggestion"] == FAILURE_SUGGESTION
        assert "Invalid arguments for execute_sql" in results[0].response["error"]
        assert "data" in results[1].response
        assert plan.query_count == 1
        assert {event.step.id for event in received} == {"call_0_1"}

    @pytest.mark.asyncio
    async def test_large_results_truncated_for_model(
        self, scripted_llm, llm_response, sql_call, plan, row_executor
    ):
        rows = [{"n": i} for i in range(10)]
        llm = scripted_llm(
            [llm_response(tool_calls=[sql_call("SELECT n FROM dbo.t")]), llm_response("done")]
        )

        await QueryAgent(llm_provider=llm, tool_result_max_rows=3)(
            _input(plan, row_executor(rows))
        )

        response = llm.requests[1].messages[-1].tool_results[0].response
        assert len(response["data"]) == 3
        assert response["rowCount"] == 10
        assert response["truncated"] is True
        assert plan.queries[0].row_count == 10


class TestIterationCap:
    @pytest.mark.asyncio
    async def test_cap_reached_executes_last_batch(
        self, scripted_llm, llm_response, sql_call, plan, row_executor
    ):
        llm = scripted_llm(
            [
                llm_response(tool_calls=[sql_call("SELECT 1 AS a")]),
                llm_response(tool_calls=[sql_call("SELECT 2 AS b")]),
            ]
        )
        executor = row_executor([{"x": 1}])
        agent = QueryAgent(llm_provider=llm, max_iterations=2)

        output = await agent(_input(plan, executor))

        assert output.data == {"final_text": "", "iterations": 2, "cap_reached": True}
        assert llm.generate.await_count == 2
        assert [query.sql for query in plan.queries] == ["SELECT 1 AS a", "SELECT 2 AS b"]
        assert executor.await_count == 2

    @pytest.mark.asyncio
    async def test_default_cap_is_five_turns(
        self, scripted_llm, llm_response, sql_call, plan, row_executor
    ):
        llm = scripted_llm(
            [llm_response(tool_calls=[sql_call(f"SELECT {n} AS n")]) for n in range(8)]
        )
        executor = row_executor([{"n": 1}])

        output = await QueryAgent(llm_provider=llm)(_input(plan, executor))

        assert MAX_ITERATIONS == 5
        assert llm.generate.await_count == 5
        assert output.data == {"final_text": "", "iterations": 5, "cap_reached": True}
        assert plan.query_count == 5
        assert executor.await_count == 5

    @pytest.mark.asyncio
    async def test_call_ids_unique_across_turns(
        self, scripted_llm, llm_response, sql_call, plan, row_executor
    ):
        llm = scripted_llm(
            [
                llm_response(tool_calls=[sql_call("SELECT 1")]),
                llm_response(tool_calls=[sql_call("SELECT 2")]),
                llm_response("done"),
            ]
        )

        await QueryAgent(llm_provider=llm)(_input(plan, row_executor([{"n": 1}])))

        last_turn = llm.requests[2].messages
        ids = [msg.tool_calls[0].id for msg in last_turn if msg.role == "assistant"]
        assert ids == ["call_0_0", "call_1_0"]
