"""
QueryPilot CLI

Command-line interface for asking questions about a registered database.

Usage:
    querypilot ask "Top 5 customers by revenue" --database-id 1 --database-type postgresql
    querypilot ask "..." --database-id 1 --database-type mssql --json
    querypilot chat --database-id 1 --database-type mysql --database-name shop
    querypilot config                      # Show effective settings
"""

import asyncio
import json
import logging
import sys
from typing import Any

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from querypilot.config import clear_settings_cache, get_settings
from querypilot.models.plan import AgentAnswer, ChartSpec, ConversationContext, PlanStepEvent
from querypilot.pipeline.orchestrator import QueryPipeline, create_pipeline
from querypilot.services.sql_executor import HTTPSQLExecutor

console = Console()

EXIT_WORDS = {"exit", "quit", "bye", ":q"}


def configure_cli_logging(verbose: bool) -> None:
    if verbose:
        get_settings().logging.configure()
        return
    for logger_name in ("querypilot", "httpx", "httpcore", "openai", "anthropic", "google_genai"):
        logging.getLogger(logger_name).setLevel(logging.ERROR)


# ============================================================================
# Helper Functions
# ============================================================================


def _mask(value: str | None) -> str:
    if not value:
        return "[dim]not set[/dim]"
    return f"{value[:4]}…{value[-4:]}" if len(value) > 12 else "****"


def _print_event(event: PlanStepEvent) -> None:
    step = event.step
    if event.type == "step_started" and step is not None:
        console.print(f"[cyan]▶[/cyan] {step.description or step.id}")
    elif event.type == "step_completed" and step is not None:
        elapsed = f"{step.execution_time:.0f}ms" if step.execution_time is not None else "-"
        console.print(f"[green]✓[/green] {step.row_count} rows in {elapsed}")
    elif event.type == "step_error" and step is not None:
        console.print(f"[red]✗[/red] {event.error}")
    elif event.type == "plan_generated" and event.steps:
        console.print(f"[cyan]Plan with {len(event.steps)} steps[/cyan]")


def _chart_table(chart: ChartSpec) -> Table:
    table = Table(
        title=f"{chart.type} chart: {chart.description or ''}".strip(),
        show_header=True,
        header_style="bold cyan",
    )
    columns: list[str] = list(chart.data[0].keys()) if chart.data else []
    for column in columns:
        table.add_column(column)
    for point in chart.data:
        table.add_row(*(str(point.get(column, "")) for column in columns))
    return table


def format_answer(result: AgentAnswer, show_sql: bool) -> None:
    """Render answer, executed SQL and chart preview."""
    console.print(Panel(Markdown(result.answer), title="[bold green]Answer[/bold green]"))

    plan = result.plan
    if show_sql and plan.queries:
        console.print("\n[bold cyan]Executed queries:[/bold cyan]")
        for index, query in enumerate(plan.queries, start=1):
            status = (
                f"[green]{query.row_count} rows[/green]"
                if query.succeeded
                else f"[red]{query.error}[/red]"
            )
            console.print(
                Panel(
                    query.sql,
                    title=f"{index}. {query.purpose or 'Query'}",
                    subtitle=status,
                    border_style="cyan",
                )
            )

    if plan.chart_data and plan.chart_data.type != "none" and plan.chart_data.data:
        console.print(_chart_table(plan.chart_data))

    console.print(
        f"[dim]{plan.query_count} queries · {plan.total_execution_time:.0f}ms · {plan.id}[/dim]"
    )


async def _ask_once(
    pipeline: QueryPipeline,
    executor: HTTPSQLExecutor,
    question: str,
    database_id: str,
    database_type: str,
    database_name: str | None,
    history: list[ConversationContext],
    strategy: str | None,
    deadline: float | None,
    live_events: bool,
) -> AgentAnswer:
    unsubscribe = pipeline.emitter.subscribe(_print_event) if live_events else None
    try:
        with console.status("[cyan]Thinking...[/cyan]", spinner="dots"):
            return await pipeline.run(
                question,
                database_id=database_id,
                database_type=database_type,
                executor=executor,
                conversation_history=history,
                database_name=database_name,
                deadline_seconds=deadline,
                strategy=strategy,
            )
    finally:
        if unsubscribe is not None:
            unsubscribe()


async def _close(pipeline: QueryPipeline, executor: HTTPSQLExecutor) -> None:
    await executor.close()
    close = getattr(pipeline.schema_retriever, "close", None)
    if close is not None:
        await close()


def _database_options(func):
    func = click.option("--database-id", required=True, help="Database id known to the API.")(
        func
    )
    func = click.option(
        "--database-type",
        required=True,
        help="Database dialect (mssql, postgresql, mysql, oracle, ...).",
    )(func)
    func = click.option("--database-name", default=None, help="Database name (MySQL schema).")(
        func
    )
    func = click.option(
        "--strategy",
        type=click.Choice(["agentic", "planned"]),
        default=None,
        help="Override the configured answering strategy.",
    )(func)
    func = click.option(
        "--deadline", type=float, default=None, help="Overall time budget in seconds."
    )(func)
    return func


# ============================================================================
# Commands
# ============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="QueryPilot")
@click.option("--verbose", "-v", is_flag=True, help="Show application logs.")
def cli(verbose: bool):
    """QueryPilot - ask questions about your database in plain language."""
    configure_cli_logging(verbose)


@cli.command()
@click.argument("question")
@_database_options
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON.")
@click.option("--show-sql/--no-show-sql", default=True, help="Show executed queries.")
def ask(
    question: str,
    database_id: str,
    database_type: str,
    database_name: str | None,
    strategy: str | None,
    deadline: float | None,
    as_json: bool,
    show_sql: bool,
):
    """Ask a single question and exit."""

    async def run_query() -> AgentAnswer:
        settings = get_settings()
        pipeline = create_pipeline(settings)
        executor = HTTPSQLExecutor(
            settings.services.api_base_url,
            database_id=database_id,
            timeout=settings.services.http_timeout,
        )
        try:
            return await _ask_once(
                pipeline,
                executor,
                question,
                database_id,
                database_type,
                database_name,
                [],
                strategy,
                deadline,
                live_events=not as_json,
            )
        finally:
            await _close(pipeline, executor)

    try:
        result = asyncio.run(run_query())
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
        return
    format_answer(result, show_sql)


@cli.command()
@_database_options
@click.option("--show-sql/--no-show-sql", default=False, help="Show executed queries.")
def chat(
    database_id: str,
    database_type: str,
    database_name: str | None,
    strategy: str | None,
    deadline: float | None,
    show_sql: bool,
):
    """Interactive session; earlier answers are used as context."""

    async def run_chat() -> None:
        settings = get_settings()
        pipeline = create_pipeline(settings)
        executor = HTTPSQLExecutor(
            settings.services.api_base_url,
            database_id=database_id,
            timeout=settings.services.http_timeout,
        )
        history: list[ConversationContext] = []
        console.print("[bold]QueryPilot[/bold] - type 'exit' to quit.")
        try:
            while True:
                question = console.input("[bold cyan]You:[/bold cyan] ").strip()
                if not question:
                    continue
                if question.lower() in EXIT_WORDS:
                    console.print("[yellow]Goodbye![/yellow]")
                    return
                result = await _ask_once(
                    pipeline,
                    executor,
                    question,
                    database_id,
                    database_type,
                    database_name,
                    history,
                    strategy,
                    deadline,
                    live_events=True,
                )
                format_answer(result, show_sql)
                history.append(
                    ConversationContext(
                        question=question,
                        answer=result.answer,
                        sql_query=result.plan.final_sql,
                    )
                )
        finally:
            await _close(pipeline, executor)

    try:
        asyncio.run(run_chat())
    except (KeyboardInterrupt, EOFError):
        console.print("\n[yellow]Goodbye![/yellow]")


@cli.command()
def config():
    """Show the effective configuration."""
    clear_settings_cache()
    settings = get_settings()

    table = Table(title=f"{settings.app_name} configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    rows: list[tuple[str, Any]] = [
        ("environment", settings.environment),
        ("llm.default_provider", settings.llm.default_provider),
        ("llm.agent_provider", settings.llm.agent_provider or "(default)"),
        ("llm.synthesis_provider", settings.llm.synthesis_provider or "(default)"),
        ("llm.google_model", settings.llm.google_model),
        ("llm.openai_model", settings.llm.openai_model),
        ("llm.anthropic_model", settings.llm.anthropic_model),
        ("llm.local_base_url", settings.llm.local_base_url),
        ("llm.google_api_key", _mask(settings.llm.google_api_key)),
        ("llm.openai_api_key", _mask(settings.llm.openai_api_key)),
        ("llm.anthropic_api_key", _mask(settings.llm.anthropic_api_key)),
        ("services.api_base_url", settings.services.api_base_url),
    ]
    rows.extend(
        (f"agent.{name}", value) for name, value in settings.agent.model_dump().items()
    )

    for name, value in rows:
        table.add_row(name, str(value))
    console.print(table)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
