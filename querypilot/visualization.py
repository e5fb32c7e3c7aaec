"""
Chart extraction and chart type selection.

The model appends an optional ```chartdata``` block to its markdown answer.
``extract_chart_data`` pulls it out (always removing it from the text) and
``decide_chart_type`` gives a deterministic chart choice from the question
and the shape of a result set, used when the model did not provide one.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from querypilot.models.agent import ChartParseError
from querypilot.models.plan import MAX_CHART_POINTS, ChartSpec, ChartType

logger = logging.getLogger(__name__)

CHART_BLOCK_PATTERN = re.compile(r"```chartdata[ \t]*\r?\n([\s\S]*?)```")

_NO_CHART_REQUEST = re.compile(
    r"\b(no chart|without (a )?chart|table only|just (a )?table|text only|no visualization)\b"
)
_BAR_REQUEST = re.compile(r"\b(bar chart|bar graph|histogram)\b")
_PIE_REQUEST = re.compile(r"\b(pie chart|donut)\b")
_LINE_REQUEST = re.compile(r"\b(line chart|line graph|time series)\b")

_PROPORTION_WORDS = re.compile(
    r"\b(share|percentage|percent|proportion|breakdown|distribution|ratio|composition)\b|%"
)
_TREND_WORDS = re.compile(
    r"\b(trends?|over time|growth|monthly|weekly|daily|yearly|annually"
    r"|(per|by) (day|week|month|quarter|year))\b"
)
_RANKING_WORDS = re.compile(
    r"\b(top|bottom|highest|lowest|most|least|best|worst"
    r"|rank|ranking|compare|comparison|versus|vs)\b"
)

_TEMPORAL_MARKERS = {"date", "time", "timestamp", "datetime"}
_PERIOD_MARKERS = {"day", "week", "month", "quarter", "year"}
_PERIOD_DISQUALIFIERS = {"type", "category", "name", "code"}
_EVENT_VERBS = {"created", "updated", "deleted", "opened", "closed", "processed", "occurred"}


# ============================================================================
# Extraction
# ============================================================================


def _parse_chart_block(payload: str) -> ChartSpec:
    try:
        raw = json.loads(payload.strip())
    except json.JSONDecodeError as exc:
        raise ChartParseError(f"chartdata is not valid JSON: {exc.msg}") from exc

    if not isinstance(raw, dict) or not raw.get("type") or not isinstance(raw.get("data"), list):
        raise ChartParseError("chartdata needs a 'type' and an array 'data'")

    try:
        return ChartSpec.model_validate(raw)
    except PydanticValidationError as exc:
        raise ChartParseError(
            "chartdata failed validation", context={"errors": exc.errors()}
        ) from exc


def extract_chart_data(text: str) -> tuple[str, ChartSpec | None]:
    """
    Split a model answer into clean markdown and an optional chart.

    The first ``chartdata`` block is parsed; every such block is removed from
    the returned text even when parsing fails. Malformed blocks are logged
    and yield ``None``.
    """
    if not text:
        return text, None

    match = CHART_BLOCK_PATTERN.search(text)
    if match is None:
        return text, None

    clean_text = CHART_BLOCK_PATTERN.sub("", text).strip()
    try:
        chart = _parse_chart_block(match.group(1))
    except ChartParseError as exc:
        logger.warning(
            f"Discarding chartdata block: {exc.message}", extra={"error": exc.to_dict()}
        )
        return clean_text, None
    return clean_text, chart


# ============================================================================
# Chart type selection
# ============================================================================


def _is_numeric_value(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, float, Decimal))


def _is_temporal_value(value: Any) -> bool:
    if isinstance(value, (datetime, date)):
        return True
    if not isinstance(value, str):
        return False
    candidate = value.strip()
    if len(candidate) < 8:
        return False
    try:
        datetime.fromisoformat(candidate.replace("Z", "+00:00"))
        return True
    except ValueError:
        return False


def _is_temporal_column(column: str, rows: list[dict[str, Any]]) -> bool:
    tokens = [token for token in re.split(r"[^a-z0-9]+", column.lower()) if token]
    if any(marker in tokens for marker in _TEMPORAL_MARKERS):
        return True
    if any(marker in tokens for marker in _PERIOD_MARKERS) and not any(
        disqualifier in tokens for disqualifier in _PERIOD_DISQUALIFIERS
    ):
        return True
    if len(tokens) >= 2 and tokens[-1] == "at" and tokens[-2] in _EVENT_VERBS:
        return True
    return any(_is_temporal_value(row.get(column)) for row in rows[:20])


@dataclass
class ResultShape:
    """Column roles and size of a result set."""

    row_count: int
    columns: list[str] = field(default_factory=list)
    numeric_columns: list[str] = field(default_factory=list)
    category_columns: list[str] = field(default_factory=list)
    temporal_columns: list[str] = field(default_factory=list)

    @classmethod
    def from_rows(cls, rows: list[dict[str, Any]]) -> "ResultShape":
        if not rows:
            return cls(row_count=0)
        columns = list(rows[0].keys())
        sample = rows[:50]
        temporal = [col for col in columns if _is_temporal_column(col, sample)]
        numeric = [
            col
            for col in columns
            if col not in temporal
            and any(_is_numeric_value(row.get(col)) for row in sample)
            and all(row.get(col) is None or _is_numeric_value(row.get(col)) for row in sample)
        ]
        category = [col for col in columns if col not in numeric and col not in temporal]
        return cls(
            row_count=len(rows),
            columns=columns,
            numeric_columns=numeric,
            category_columns=category,
            temporal_columns=temporal,
        )

    @property
    def is_single_value(self) -> bool:
        return self.row_count == 1 or (self.row_count > 0 and len(self.columns) == 1)


def decide_chart_type(question: str, shape: ResultShape) -> ChartType:
    """
    Pick a chart type for a result set.

    - empty, single value or no numeric column: none
    - an explicit request in the question wins when the data allows it
    - proportions: pie for 3 to 8 rows, bar otherwise
    - time trends (trend wording or a date-like column): line
    - rankings and comparisons: bar for 2 to 20 rows
    """
    text = (question or "").lower()
    rows = shape.row_count

    if rows == 0 or shape.is_single_value or not shape.numeric_columns:
        return "none"

    if _NO_CHART_REQUEST.search(text):
        return "none"
    if _PIE_REQUEST.search(text) and rows <= 12:
        return "pie"
    if _BAR_REQUEST.search(text):
        return "bar"
    if _LINE_REQUEST.search(text):
        return "line"

    if _PROPORTION_WORDS.search(text):
        if 3 <= rows <= 8:
            return "pie"
        return "bar" if rows <= MAX_CHART_POINTS else "none"

    if _TREND_WORDS.search(text) or shape.temporal_columns:
        return "line"

    if _RANKING_WORDS.search(text) and rows <= MAX_CHART_POINTS:
        return "bar"

    if shape.category_columns and rows <= MAX_CHART_POINTS:
        return "bar"
    return "none"


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def build_chart_from_rows(
    question: str,
    rows: list[dict[str, Any]],
    max_points: int = MAX_CHART_POINTS,
) -> ChartSpec | None:
    """Derive a chart from raw rows; None when no chart fits."""
    shape = ResultShape.from_rows(rows)
    chart_type = decide_chart_type(question, shape)
    if chart_type == "none":
        return None

    y_key = shape.numeric_columns[0]
    if chart_type == "line" and shape.temporal_columns:
        x_key = shape.temporal_columns[0]
    elif shape.category_columns:
        x_key = shape.category_columns[0]
    elif shape.temporal_columns:
        x_key = shape.temporal_columns[0]
    else:
        return None

    points = [
        {x_key: _jsonable(row.get(x_key)), y_key: _jsonable(row.get(y_key))}
        for row in rows[: min(max_points, MAX_CHART_POINTS)]
    ]
    return ChartSpec(
        type=chart_type,
        data=points,
        x_axis_key=x_key,
        y_axis_key=y_key,
        description=f"{y_key} by {x_key}",
    )
