"""
Unit tests for the command-line interface.
"""

import json
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from querypilot.cli import _mask, cli
from querypilot.models.plan import AgentAnswer, QueryExecution, QueryPlan
from querypilot.models.schema import SQLResult
from querypilot.pipeline.events import PlanEventEmitter


@pytest.fixture(autouse=True)
def restore_logger_levels():
    """The CLI quiets library loggers; put them back after each test."""
    names = ("querypilot", "httpx", "httpcore", "openai", "anthropic", "google_genai")
    levels = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


@pytest.fixture
def answer() -> AgentAnswer:
    plan = QueryPlan(id="plan_1", question="How many orders?", database_type="mssql")
    plan.queries.append(
        QueryExecution(
            sql="SELECT COUNT(*) AS n FROM dbo.orders",
            purpose="Count orders",
            result=SQLResult(data=[{"n": 900}]),
            row_count=1,
            execution_time=8.0,
        )
    )
    plan.final_answer = "There are **900** orders."
    return AgentAnswer(answer=plan.final_answer, plan=plan)


@pytest.fixture
def fake_pipeline(answer):
    pipeline = MagicMock()
    pipeline.emitter = PlanEventEmitter()
    pipeline.run = AsyncMock(return_value=answer)
    pipeline.schema_retriever.close = AsyncMock()
    return pipeline


@pytest.fixture
def fake_executor():
    executor = MagicMock()
    executor.close = AsyncMock()
    return executor


ASK_ARGS = ["ask", "How many orders?", "--database-id", "3", "--database-type", "mssql"]


class TestMask:
    def test_masks_long_values(self):
        assert _mask("test-google-key-1234567890") == "test…7890"

    def test_short_and_missing(self):
        assert _mask("short") == "****"
        assert "not set" in _mask(None)


class TestConfigCommand:
    def test_shows_settings_without_secrets(self):
        result = CliRunner().invoke(cli, ["config"])

        assert result.exit_code == 0
        assert "QueryPilot configuration" in result.output
        assert "agent.max_iterations" in result.output
        assert "test-google-key-1234567890" not in result.output


class TestAskCommand:
    def test_json_output(self, fake_pipeline, fake_executor):
        with patch("querypilot.cli.create_pipeline", return_value=fake_pipeline), patch(
            "querypilot.cli.HTTPSQLExecutor", return_value=fake_executor
        ) as executor_cls:
            result = CliRunner().invoke(cli, [*ASK_ARGS, "--json", "--strategy", "planned"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output[result.output.index("{") :])
        assert payload["answer"] == "There are **900** orders."
        assert payload["plan"]["query_count"] == 1
        assert payload["plan"]["final_sql"] == "SELECT COUNT(*) AS n FROM dbo.orders"

        fake_pipeline.run.assert_awaited_once()
        kwargs = fake_pipeline.run.await_args.kwargs
        assert kwargs["database_id"] == "3"
        assert kwargs["database_type"] == "mssql"
        assert kwargs["strategy"] == "planned"
        assert executor_cls.call_args.kwargs["database_id"] == "3"
        fake_executor.close.assert_awaited_once()
        fake_pipeline.schema_retriever.close.assert_awaited_once()

    def test_rendered_output(self, fake_pipeline, fake_executor):
        with patch("querypilot.cli.create_pipeline", return_value=fake_pipeline), patch(
            "querypilot.cli.HTTPSQLExecutor", return_value=fake_executor
        ):
            result = CliRunner().invoke(cli, ASK_ARGS)

        assert result.exit_code == 0, result.output
        assert "900" in result.output
        assert "SELECT COUNT(*) AS n FROM dbo.orders" in result.output
        assert "plan_1" in result.output

    def test_failure_exits_non_zero(self, fake_pipeline, fake_executor):
        fake_pipeline.run = AsyncMock(side_effect=RuntimeError("proxy down"))

        with patch("querypilot.cli.create_pipeline", return_value=fake_pipeline), patch(
            "querypilot.cli.HTTPSQLExecutor", return_value=fake_executor
        ):
            result = CliRunner().invoke(cli, ASK_ARGS)

        assert result.exit_code == 1
        assert "Error: proxy down" in result.output
        fake_executor.close.assert_awaited_once()

    def test_requires_database_options(self):
        result = CliRunner().invoke(cli, ["ask", "How many orders?"])

        assert result.exit_code == 2
        assert "--database-id" in result.output
