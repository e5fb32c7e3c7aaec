"""
Answer Synthesis Agent

Produces the final markdown answer when the tool-calling loop ended
without text of its own (iteration cap, or a model that stopped silently).
With at least one successful query a secondary model call writes the
answer; otherwise, or when that call fails, a deterministic summary of the
executed queries is returned.

Also home of the fixed markdown answers used by the pipeline (no schema,
unexpected error).
"""

import json
import logging
from collections.abc import Sequence
from typing import Any

from querypilot.agents.base import BaseAgent
from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.models import LLMMessage, LLMRequest
from querypilot.models.agent import AgentError, AgentInput, AgentOutput
from querypilot.models.plan import MAX_CHART_POINTS, QueryExecution
from querypilot.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

FALLBACK_TABLE_ROWS = 5


def build_no_schema_answer(question: str) -> str:
    return (
        "# No Database Schema Available\n\n"
        "I don't have access to relevant database tables to answer your question:\n\n"
        f'> "{question}"\n\n'
        "**Possible reasons:**\n"
        "- Database schema hasn't been indexed yet\n"
        "- No tables match your question\n"
        "- Database connection issues\n\n"
        "**Next steps:**\n"
        "- Check your database connection\n"
        "- Ensure schema embeddings are generated\n"
        "- Try rephrasing your question"
    )


def build_error_answer(message: str) -> str:
    return (
        "# Error\n\n"
        "I encountered an error:\n\n"
        f"**{message}**\n\n"
        "Please try again or rephrase your question."
    )


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value).replace("|", "\\|").replace("\n", " ")


def format_markdown_table(rows: list[dict[str, Any]], limit: int = FALLBACK_TABLE_ROWS) -> str:
    """Render the first ``limit`` rows as a markdown table (columns from the first row)."""
    if not rows:
        return ""
    sample = rows[:limit]
    columns = list(sample[0].keys())
    lines = [
        f"| {' | '.join(columns)} |",
        f"| {' | '.join('---' for _ in columns)} |",
    ]
    for row in sample:
        lines.append(f"| {' | '.join(_cell(row.get(col)) for col in columns)} |")
    return "\n".join(lines)


def build_fallback_answer(question: str, queries: Sequence[QueryExecution]) -> str:
    """Deterministic answer built from executed queries; never includes a chart."""
    if not queries:
        return (
            "# No Answer\n\n"
            "I wasn't able to produce an answer and no queries were run.\n\n"
            f"**Your question:** {question}\n\n"
            "Please try rephrasing your question or adding more detail."
        )

    successful = [query for query in queries if query.succeeded]
    if not successful:
        return (
            "# Query Results\n\n"
            "I attempted to answer your question but encountered errors with all queries.\n\n"
            f"**Your question:** {question}\n\n"
            f"**Attempted queries:** {len(queries)}\n\n"
            "Please try rephrasing your question or check your database schema."
        )

    noun = "query" if len(successful) == 1 else "queries"
    sections = ["# Query Results", f"Based on {len(successful)} database {noun}:"]
    for index, query in enumerate(successful, start=1):
        sections.append(f"## Query {index}: {query.purpose or 'Query'}")
        sections.append(f"**SQL:**\n```sql\n{query.sql}\n```")
        sections.append(f"**Results:** {query.row_count or 0} rows")
        table = format_markdown_table(query.result.data if query.result else [])
        if table:
            sections.append(table)
    return "\n\n".join(sections) + "\n"


class AnswerSynthesisAgent(BaseAgent):
    """
    Writes the final answer from executed queries.

    The model sees an execution summary plus up to ``sample_rows`` rows per
    successful query and must follow the usual markdown + chartdata format.
    """

    def __init__(
        self,
        llm_provider: BaseLLMProvider | None,
        temperature: float = 0.2,
        sample_rows: int = 10,
        max_chart_points: int = MAX_CHART_POINTS,
        model_timeout: float | None = None,
        loader: PromptLoader | None = None,
    ):
        super().__init__(
            name="AnswerSynthesisAgent",
            llm_provider=llm_provider,
            max_retries=0,
            model_timeout=model_timeout,
        )
        self.temperature = temperature
        self.sample_rows = sample_rows
        self.max_chart_points = max_chart_points
        self.prompts = loader or PromptLoader()

    async def execute(self, input: AgentInput) -> AgentOutput:
        queries: list[QueryExecution] = input.context.get("queries", [])
        answer, synthesized = await self.compose(input.query, queries)
        return AgentOutput(
            success=True,
            data={"answer": answer, "synthesized": synthesized},
            metadata=self.metadata,
        )

    async def synthesize(self, question: str, queries: Sequence[QueryExecution]) -> str:
        """Return a markdown answer; falls back to the deterministic summary."""
        answer, _ = await self.compose(question, queries)
        return answer

    async def compose(
        self, question: str, queries: Sequence[QueryExecution]
    ) -> tuple[str, bool]:
        """
        Return ``(answer, synthesized)``.

        ``synthesized`` is False when the answer is the deterministic summary,
        which never carries a chart.
        """
        successful = [query for query in queries if query.succeeded]
        if not successful or self.llm is None:
            return build_fallback_answer(question, queries), False

        prompt = self._build_prompt(question, queries, successful)
        request = LLMRequest(
            messages=[LLMMessage(role="user", content=prompt)],
            temperature=self.temperature,
        )
        try:
            response = await self._generate(request)
        except AgentError as exc:
            logger.warning(
                f"Answer synthesis failed, using fallback summary: {exc.message}",
                extra={"agent": self.name, "queries": len(queries)},
            )
            return build_fallback_answer(question, queries), False

        if not response.content.strip():
            logger.warning("Answer synthesis returned no text, using fallback summary")
            return build_fallback_answer(question, queries), False
        return response.content, True

    def _build_prompt(
        self,
        question: str,
        queries: Sequence[QueryExecution],
        successful: list[QueryExecution],
    ) -> str:
        total_time = sum(query.execution_time or 0 for query in queries)
        return self.prompts.render(
            "agents/answer_synthesis.md",
            question=question,
            total_queries=len(queries),
            successful=len(successful),
            failed=len(queries) - len(successful),
            total_rows=sum(query.row_count or 0 for query in successful),
            total_time_ms=round(total_time),
            max_chart_points=self.max_chart_points,
            queries=[
                {
                    "purpose": query.purpose or "Query",
                    "sql": query.sql,
                    "row_count": query.row_count or 0,
                    "execution_time": round(query.execution_time or 0),
                    "sample_json": json.dumps(
                        query.result.data[: self.sample_rows] if query.result else [],
                        indent=2,
                        default=str,
                    ),
                }
                for query in successful
            ],
        )
