"""Built-in SQL tool exposed to the model."""

from __future__ import annotations

from querypilot.models.plan import QueryExecution
from querypilot.sql.adapter import execute_sql_with_retry
from querypilot.tools.base import ToolContext, tool


@tool(
    name="execute_sql",
    description=(
        "Execute a SQL SELECT query against the database and return the results. "
        "Use this to retrieve data needed to answer the user's question. You can "
        "call it several times, including several calls in one turn."
    ),
    parameter_descriptions={
        "sql": "The SQL SELECT query to execute. Use fully qualified table names.",
        "purpose": "Brief explanation of what this query is retrieving and why.",
    },
)
async def execute_sql(sql: str, purpose: str, ctx: ToolContext) -> QueryExecution:
    return await execute_sql_with_retry(
        sql,
        purpose,
        ctx.executor,
        ctx.database_type,
        max_retries=ctx.max_retries,
        database_name=ctx.database_name,
        classifier=ctx.classifier,
        timeout=ctx.sql_timeout,
        backoff_seconds=ctx.retry_backoff,
        read_only_guard=ctx.read_only_guard,
    )
