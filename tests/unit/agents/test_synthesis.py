"""
Unit tests for answer synthesis and the fixed markdown answers.
"""

import pytest

from querypilot.agents.synthesis import (
    AnswerSynthesisAgent,
    build_error_answer,
    build_fallback_answer,
    build_no_schema_answer,
    format_markdown_table,
)
from querypilot.models.agent import AgentInput
from querypilot.models.plan import QueryExecution
from querypilot.models.schema import SQLResult


def _success(purpose: str, sql: str, rows: list[dict]) -> QueryExecution:
    return QueryExecution(
        sql=sql,
        purpose=purpose,
        result=SQLResult(data=rows),
        row_count=len(rows),
        execution_time=12.0,
    )


def _failure(sql: str = "SELECT bad") -> QueryExecution:
    return QueryExecution(sql=sql, error="Invalid column name 'bad'", execution_time=3.0)


# ============================================================================
# Fixed answers
# ============================================================================


class TestFixedAnswers:
    def test_no_schema_answer_quotes_question(self):
        answer = build_no_schema_answer("How many users?")

        assert answer.startswith("# No Database Schema Available")
        assert '> "How many users?"' in answer
        assert "Try rephrasing your question" in answer

    def test_error_answer(self):
        answer = build_error_answer("Model call timed out")

        assert answer.startswith("# Error")
        assert "**Model call timed out**" in answer


class TestMarkdownTable:
    def test_rows_limited_and_pipes_escaped(self):
        rows = [{"name": f"a|{i}", "n": i} for i in range(8)]
        table = format_markdown_table(rows)
        lines = table.splitlines()

        assert lines[0] == "| name | n |"
        assert lines[1] == "| --- | --- |"
        assert len(lines) == 2 + 5
        assert "a\\|0" in lines[2]

    def test_none_rendered_empty(self):
        assert format_markdown_table([{"a": None}]).splitlines()[2] == "|  |"

    def test_empty(self):
        assert format_markdown_table([]) == ""


class TestFallbackAnswer:
    def test_all_failed(self):
        answer = build_fallback_answer("q?", [_failure(), _failure()])

        assert "encountered errors with all queries" in answer
        assert "**Attempted queries:** 2" in answer

    def test_no_queries(self):
        answer = build_fallback_answer("q?", [])

        assert answer.startswith("# No Answer")
        assert "no queries were run" in answer
        assert "Attempted queries" not in answer

    def test_successful_queries_listed(self, revenue_rows):
        answer = build_fallback_answer(
            "Top customers",
            [
                _success("Top customers by revenue", "SELECT TOP 5 ...", revenue_rows),
                _failure(),
            ],
        )

        assert answer.startswith("# Query Results")
        assert "Based on 1 database query:" in answer
        assert "## Query 1: Top customers by revenue" in answer
        assert "```sql\nSELECT TOP 5 ...\n```" in answer
        assert "**Results:** 5 rows" in answer
        assert "| Acme | 5200.0 |" in answer
        assert "chartdata" not in answer

    def test_plural(self):
        answer = build_fallback_answer(
            "q", [_success("a", "SELECT 1", [{"n": 1}]), _success("b", "SELECT 2", [])]
        )
        assert "Based on 2 database queries:" in answer


# ============================================================================
# Agent
# ============================================================================


class TestAnswerSynthesisAgent:
    @pytest.mark.asyncio
    async def test_model_answer(self, scripted_llm, llm_response, revenue_rows):
        llm = scripted_llm([llm_response("# Revenue\n\nAcme leads.")])
        agent = AnswerSynthesisAgent(llm_provider=llm, sample_rows=2)

        answer = await agent.synthesize(
            "Top customers", [_success("Top customers", "SELECT ...", revenue_rows)]
        )

        assert answer == "# Revenue\n\nAcme leads."
        request = llm.requests[0]
        prompt = request.messages[0].content
        assert request.temperature == 0.2
        assert '"Top customers"' in prompt
        assert "Acme" in prompt and "Globex" in prompt
        assert "Initech" not in prompt

    @pytest.mark.asyncio
    async def test_no_successful_queries_skips_model(self, scripted_llm):
        llm = scripted_llm([])
        agent = AnswerSynthesisAgent(llm_provider=llm)

        answer = await agent.synthesize("q", [_failure()])

        assert "encountered errors with all queries" in answer
        llm.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_model_failure_falls_back(self, scripted_llm, revenue_rows):
        llm = scripted_llm([RuntimeError("quota exceeded")])
        agent = AnswerSynthesisAgent(llm_provider=llm)

        answer = await agent.synthesize("q", [_success("Top", "SELECT ...", revenue_rows)])

        assert answer.startswith("# Query Results")
        llm.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_compose_flags_the_deterministic_summary(self, scripted_llm, revenue_rows):
        agent = AnswerSynthesisAgent(llm_provider=scripted_llm([RuntimeError("quota exceeded")]))

        answer, synthesized = await agent.compose(
            "q", [_success("Top", "SELECT ...", revenue_rows)]
        )

        assert answer.startswith("# Query Results")
        assert synthesized is False

    @pytest.mark.asyncio
    async def test_empty_model_text_falls_back(self, scripted_llm, llm_response, revenue_rows):
        agent = AnswerSynthesisAgent(llm_provider=scripted_llm([llm_response("   ")]))

        answer = await agent.synthesize("q", [_success("Top", "SELECT ...", revenue_rows)])

        assert answer.startswith("# Query Results")

    @pytest.mark.asyncio
    async def test_without_provider(self, revenue_rows):
        agent = AnswerSynthesisAgent(llm_provider=None)

        answer = await agent.synthesize("q", [_success("Top", "SELECT ...", revenue_rows)])

        assert answer.startswith("# Query Results")

    @pytest.mark.asyncio
    async def test_execute_reports_synthesized_flag(self, scripted_llm, llm_response, revenue_rows):
        agent = AnswerSynthesisAgent(llm_provider=scripted_llm([llm_response("Done.")]))

        output = await agent(
            AgentInput(
                query="q", context={"queries": [_success("Top", "SELECT ...", revenue_rows)]}
            )
        )

        assert output.data == {"answer": "Done.", "synthesized": True}
        assert output.metadata.llm_calls == 1
