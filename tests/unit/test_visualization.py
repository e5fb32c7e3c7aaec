"""
Unit tests for chart extraction and chart type selection.
"""

from datetime import date
from decimal import Decimal

import pytest

from querypilot.visualization import (
    ResultShape,
    build_chart_from_rows,
    decide_chart_type,
    extract_chart_data,
)

ANSWER_WITH_CHART = """# Top customers

Acme leads with **$5,200**.

```chartdata
{"type": "bar", "data": [{"name": "Acme", "revenue": 5200}, {"name": "Globex", "revenue": 4100}],
 "xAxisKey": "name", "yAxisKey": "revenue", "description": "Revenue by customer"}
```
"""


# ============================================================================
# Extraction
# ============================================================================


class TestExtractChartData:
    def test_valid_block(self):
        text, chart = extract_chart_data(ANSWER_WITH_CHART)

        assert chart is not None
        assert chart.type == "bar"
        assert chart.x_axis_key == "name"
        assert len(chart.data) == 2
        assert "chartdata" not in text
        assert text.startswith("# Top customers")
        assert text.endswith("**$5,200**.")

    def test_no_block(self):
        assert extract_chart_data("Just text") == ("Just text", None)

    def test_empty_text(self):
        assert extract_chart_data("") == ("", None)

    def test_malformed_json_removed_from_text(self):
        text, chart = extract_chart_data("Answer\n\n```chartdata\n{not json}\n```")

        assert chart is None
        assert text == "Answer"

    def test_missing_data_array(self):
        text, chart = extract_chart_data('Answer\n```chartdata\n{"type": "bar"}\n```')

        assert chart is None
        assert "chartdata" not in text

    def test_invalid_type(self):
        _, chart = extract_chart_data('```chartdata\n{"type": "radar", "data": []}\n```')
        assert chart is None

    def test_points_clamped(self):
        points = ", ".join(f'{{"x": {i}, "y": {i}}}' for i in range(30))
        _, chart = extract_chart_data(f'```chartdata\n{{"type": "line", "data": [{points}]}}\n```')

        assert len(chart.data) == 20

    def test_every_block_removed_first_parsed(self):
        text = (
            'A\n```chartdata\n{"type": "pie", "data": [{"k": "a", "v": 1}]}\n```\n'
            'B\n```chartdata\n{"type": "bar", "data": []}\n```'
        )
        clean, chart = extract_chart_data(text)

        assert chart.type == "pie"
        assert "chartdata" not in clean
        assert "A" in clean and "B" in clean


# ============================================================================
# Result shape
# ============================================================================


class TestResultShape:
    def test_column_roles(self):
        rows = [
            {"order_date": "2024-01-01", "region": "EU", "total": Decimal("10.5"), "orders": 3},
            {"order_date": "2024-01-02", "region": "US", "total": Decimal("7.0"), "orders": None},
        ]
        shape = ResultShape.from_rows(rows)

        assert shape.temporal_columns == ["order_date"]
        assert shape.numeric_columns == ["total", "orders"]
        assert shape.category_columns == ["region"]

    def test_year_column_is_temporal_not_numeric(self):
        shape = ResultShape.from_rows([{"year": 2022, "sales": 1}, {"year": 2023, "sales": 2}])

        assert shape.temporal_columns == ["year"]
        assert shape.numeric_columns == ["sales"]

    def test_period_disqualifier(self):
        rows = [{"month_name": "Jan", "n": 1}, {"month_name": "Feb", "n": 2}]
        shape = ResultShape.from_rows(rows)
        assert shape.temporal_columns == []
        assert shape.category_columns == ["month_name"]

    def test_date_values_detected(self):
        shape = ResultShape.from_rows([{"bucket": date(2024, 1, 1), "n": 1}])
        assert shape.temporal_columns == ["bucket"]

    def test_booleans_are_not_numeric(self):
        shape = ResultShape.from_rows([{"active": True, "name": "a"}])
        assert shape.numeric_columns == []

    def test_single_value(self):
        assert ResultShape.from_rows([{"total": 42}]).is_single_value
        assert ResultShape.from_rows([{"total": 1}, {"total": 2}]).is_single_value

    def test_empty(self):
        shape = ResultShape.from_rows([])
        assert shape.row_count == 0
        assert shape.columns == []


# ============================================================================
# Chart type selection
# ============================================================================


def _category_rows(count: int) -> list[dict]:
    return [{"category": f"c{i}", "amount": i * 10} for i in range(count)]


class TestDecideChartType:
    def test_empty_result(self):
        assert decide_chart_type("top products", ResultShape.from_rows([])) == "none"

    def test_single_value(self):
        assert decide_chart_type("total revenue", ResultShape.from_rows([{"total": 1}])) == "none"

    def test_no_numeric_column(self):
        shape = ResultShape.from_rows([{"name": "a"}, {"name": "b"}])
        assert decide_chart_type("list names", shape) == "none"

    def test_no_chart_requested(self):
        shape = ResultShape.from_rows(_category_rows(5))
        assert decide_chart_type("top categories, table only", shape) == "none"

    def test_explicit_pie_request(self):
        shape = ResultShape.from_rows(_category_rows(10))
        assert decide_chart_type("show a pie chart of amounts", shape) == "pie"

    def test_explicit_pie_request_too_many_slices(self):
        shape = ResultShape.from_rows(_category_rows(15))
        assert decide_chart_type("show a pie chart of amounts", shape) == "bar"

    def test_explicit_line_request(self):
        shape = ResultShape.from_rows(_category_rows(5))
        assert decide_chart_type("draw a line chart", shape) == "line"

    def test_proportion_small(self):
        shape = ResultShape.from_rows(_category_rows(4))
        assert decide_chart_type("share of sales per category", shape) == "pie"

    def test_proportion_medium(self):
        shape = ResultShape.from_rows(_category_rows(12))
        assert decide_chart_type("breakdown by category", shape) == "bar"

    def test_proportion_large(self):
        shape = ResultShape.from_rows(_category_rows(40))
        assert decide_chart_type("distribution of amounts", shape) == "none"

    def test_trend_words(self):
        shape = ResultShape.from_rows(_category_rows(6))
        assert decide_chart_type("revenue trend", shape) == "line"

    def test_temporal_column(self):
        rows = [{"order_date": f"2024-01-0{i}", "n": i} for i in range(1, 8)]
        assert decide_chart_type("orders", ResultShape.from_rows(rows)) == "line"

    def test_ranking(self):
        shape = ResultShape.from_rows(_category_rows(5))
        assert decide_chart_type("top 5 categories", shape) == "bar"

    def test_category_default(self):
        shape = ResultShape.from_rows(_category_rows(8))
        assert decide_chart_type("amount per category", shape) == "bar"

    def test_large_unranked_result(self):
        shape = ResultShape.from_rows(_category_rows(60))
        assert decide_chart_type("amount per category", shape) == "none"


class TestBuildChartFromRows:
    def test_bar_chart(self, revenue_rows):
        chart = build_chart_from_rows("Top 5 customers by revenue", revenue_rows)

        assert chart.type == "bar"
        assert chart.x_axis_key == "name"
        assert chart.y_axis_key == "revenue"
        assert chart.description == "revenue by name"
        assert chart.data[0] == {"name": "Acme", "revenue": 5200.0}

    def test_line_chart_uses_temporal_axis(self):
        rows = [
            {"region": "EU", "month": date(2024, m, 1), "total": Decimal(m * 100)}
            for m in range(1, 7)
        ]
        chart = build_chart_from_rows("monthly revenue", rows)

        assert chart.type == "line"
        assert chart.x_axis_key == "month"
        assert chart.data[0] == {"month": "2024-01-01", "total": 100.0}

    def test_points_capped(self):
        rows = [{"day": f"2024-01-{d:02d}", "n": d} for d in range(1, 31)]
        chart = build_chart_from_rows("daily signups", rows, max_points=10)

        assert len(chart.data) == 10

    def test_no_chart(self):
        assert build_chart_from_rows("total", [{"total": 3}]) is None

    @pytest.mark.parametrize("question", ["top products", "revenue trend"])
    def test_empty_rows(self, question):
        assert build_chart_from_rows(question, []) is None
