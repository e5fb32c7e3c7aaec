"""
Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import logging
from typing import Any
from unittest.mock import AsyncMock

import pytest

from querypilot.llm.models import LLMResponse, LLMToolCall, LLMUsage
from querypilot.models.schema import SQLResult, TableSchema

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires API keys and external services)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (may require external services)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow (takes more than 1 second)")
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly enabled."""
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(
        reason="Integration tests disabled (use --run-integration to enable)."
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def configure_test_logging(caplog):
    """
    Configure logging for tests.

    Sets up log capture and configures log levels.
    This fixture runs automatically for all tests.
    """
    caplog.set_level(logging.DEBUG)
    yield


# ============================================================================
# Environment and Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def mock_llm_api_keys(monkeypatch):
    """
    Fake provider keys so settings and factories never need real credentials.

    Also disables .env loading and clears the settings cache around each test.
    """
    from querypilot.config import clear_settings_cache

    clear_settings_cache()
    monkeypatch.setenv("QUERYPILOT_ENV_SOURCE", "environment")
    monkeypatch.setenv("LLM_GOOGLE_API_KEY", "test-google-key-1234567890")
    monkeypatch.setenv("LLM_OPENAI_API_KEY", "sk-test-key-1234567890-abcdefghijklmnop")
    monkeypatch.setenv("LLM_ANTHROPIC_API_KEY", "sk-ant-REDACTED")
    yield
    clear_settings_cache()


# ============================================================================
# Mock LLM Provider
# ============================================================================


def _response(content: str = "", tool_calls: list[LLMToolCall] | None = None) -> LLMResponse:
    return LLMResponse(
        content=content,
        tool_calls=tool_calls or [],
        model="mock-model",
        usage=LLMUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        finish_reason="tool_calls" if tool_calls else "stop",
        provider="mock",
    )


@pytest.fixture
def llm_response():
    """
    Factory for LLMResponse objects.

    Usage:
        llm_response("final answer")
        llm_response(tool_calls=[sql_call("SELECT 1")])
    """
    return _response


@pytest.fixture
def sql_call():
    """Factory for ``execute_sql`` tool calls as issued by a provider."""

    def _call(sql: str, purpose: str = "Fetch data", call_id: str | None = None) -> LLMToolCall:
        return LLMToolCall(
            id=call_id, name="execute_sql", arguments={"sql": sql, "purpose": purpose}
        )

    return _call


class ScriptedLLMProvider:
    """Provider double that replays a fixed list of responses (or exceptions)."""

    def __init__(self, responses: list[Any]):
        self.provider_name = "mock"
        self.model = "mock-model"
        self.generate = AsyncMock(side_effect=list(responses))

    @property
    def requests(self) -> list[Any]:
        return [call.args[0] for call in self.generate.call_args_list]


@pytest.fixture
def scripted_llm():
    """
    Mock LLM provider for testing agents.

    Usage:
        llm = scripted_llm(llm_response(tool_calls=[...]), llm_response("done"))
        agent = QueryAgent(llm_provider=llm)
    """
    return ScriptedLLMProvider


# ============================================================================
# Common Test Data
# ============================================================================


@pytest.fixture
def sample_query() -> str:
    """Sample user question for testing."""
    return "What are the top 5 customers by revenue?"


@pytest.fixture
def sample_tables() -> list[TableSchema]:
    """Candidate tables as returned by schema search."""
    return [
        TableSchema.model_validate(
            {
                "tableName": "customers",
                "schemaName": "dbo",
                "tableDescription": "Customer master data",
                "columns": [
                    {"name": "id", "type": "int"},
                    {"name": "name", "type": "nvarchar"},
                ],
            }
        ),
        TableSchema.model_validate(
            {
                "tableName": "orders",
                "schemaName": "dbo",
                "columns": [
                    {"name": "id", "type": "int"},
                    {"name": "customer_id", "type": "int"},
                    {"name": "total", "type": "decimal"},
                    {"name": "order_date", "type": "date"},
                ],
            }
        ),
    ]


@pytest.fixture
def revenue_rows() -> list[dict[str, Any]]:
    return [
        {"name": "Acme", "revenue": 5200.0},
        {"name": "Globex", "revenue": 4100.0},
        {"name": "Initech", "revenue": 3900.0},
        {"name": "Umbrella", "revenue": 2500.0},
        {"name": "Hooli", "revenue": 1800.0},
    ]


@pytest.fixture
def row_executor():
    """
    Factory for SQL executors returning fixed rows.

    Usage:
        executor = row_executor([{"n": 1}])
        await executor("SELECT 1")
    """

    def _executor(rows: list[dict[str, Any]] | None = None, **kwargs: Any) -> AsyncMock:
        if "side_effect" in kwargs:
            return AsyncMock(side_effect=kwargs["side_effect"])
        return AsyncMock(return_value=SQLResult(data=rows or []))

    return _executor
