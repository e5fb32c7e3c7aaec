"""
SQL Execution Adapter

Runs one statement through the host-supplied executor with bounded
retry-and-repair, and always returns a finished ``QueryExecution``
(result or error, never both) instead of raising.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from querypilot.models.plan import QueryExecution
from querypilot.models.schema import SQLResult
from querypilot.sql.guard import check_read_only
from querypilot.sql.repair import ErrorClassifier

logger = logging.getLogger(__name__)

# Host-supplied executor bound to one database connection; raises on failure.
SQLExecutor = Callable[[str], Awaitable[Any]]


def coerce_result(raw: Any) -> SQLResult:
    """Accept an ``SQLResult``, a ``{data, rowCount?, executionTime?}`` mapping or a row list."""
    if isinstance(raw, SQLResult):
        return raw
    if isinstance(raw, list):
        return SQLResult(data=raw)
    if isinstance(raw, dict):
        return SQLResult.model_validate(raw)
    raise TypeError(f"Unsupported executor result type: {type(raw).__name__}")


async def execute_sql_with_retry(
    sql: str,
    purpose: str,
    executor: SQLExecutor,
    database_type: str,
    max_retries: int = 2,
    *,
    database_name: str | None = None,
    classifier: ErrorClassifier | None = None,
    timeout: float | None = None,
    backoff_seconds: float = 0.0,
    read_only_guard: bool = True,
) -> QueryExecution:
    """
    Execute ``sql`` with up to ``max_retries`` additional attempts.

    Failures are classified; recognised error classes (a missing table, for
    instance) rewrite the statement before the next attempt, anything else
    retries the same SQL. ``execution_time`` is measured in milliseconds from
    the first attempt.

    Args:
        sql: Statement issued by the model
        purpose: Model-supplied reason for the query
        executor: Async callable bound to one connection
        database_type: Dialect name, drives the default schema used by repairs
        max_retries: Extra attempts after the first one
        database_name: Database name (MySQL-family default schema)
        classifier: Repair registry (defaults to the built-in strategies)
        timeout: Seconds allowed per attempt
        backoff_seconds: Linear delay before each retry
        read_only_guard: Reject anything but a single SELECT without executing it

    Returns:
        QueryExecution with exactly one of ``result`` / ``error`` set
    """
    classifier = classifier or ErrorClassifier()
    start = time.perf_counter()
    current_sql = sql

    if read_only_guard:
        violation = check_read_only(sql)
        if violation:
            logger.warning(
                f"Read-only guard rejected statement: {violation}",
                extra={"sql": sql[:500], "purpose": purpose},
            )
            return QueryExecution(
                sql=sql,
                purpose=purpose,
                error=f"Rejected before execution: {violation}",
                execution_time=(time.perf_counter() - start) * 1000,
                attempts=0,
            )

    last_error = "Unknown error"
    attempts = 0
    for attempt in range(max_retries + 1):
        attempts = attempt + 1
        try:
            if timeout is not None:
                raw = await asyncio.wait_for(executor(current_sql), timeout=timeout)
            else:
                raw = await executor(current_sql)
            result = coerce_result(raw)
        except (TimeoutError, asyncio.TimeoutError):
            last_error = f"Query timed out after {timeout}s"
        except PydanticValidationError as exc:
            last_error = f"Executor returned an invalid result: {exc.errors()[0].get('msg', exc)}"
        except Exception as exc:
            last_error = str(exc) or type(exc).__name__
        else:
            elapsed = (time.perf_counter() - start) * 1000
            logger.info(
                f"SQL succeeded on attempt {attempts}",
                extra={"rows": len(result.data), "duration_ms": elapsed, "purpose": purpose},
            )
            return QueryExecution(
                sql=current_sql,
                purpose=purpose,
                result=result,
                execution_time=elapsed,
                row_count=len(result.data),
                attempts=attempts,
                original_sql=sql if current_sql != sql else None,
            )

        logger.warning(
            f"SQL attempt {attempts} failed: {last_error}",
            extra={"attempt": attempts, "max_retries": max_retries, "sql": current_sql[:500]},
        )

        if attempt < max_retries:
            repaired = classifier.repair(current_sql, last_error, database_type, database_name)
            if repaired:
                current_sql = repaired
            if backoff_seconds:
                await asyncio.sleep(backoff_seconds * (attempt + 1))

    return QueryExecution(
        sql=current_sql,
        purpose=purpose,
        error=last_error,
        execution_time=(time.perf_counter() - start) * 1000,
        attempts=attempts,
        original_sql=sql if current_sql != sql else None,
    )
