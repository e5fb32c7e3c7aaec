"""
Error classification and automatic SQL repair.

An ``ErrorClassifier`` holds an ordered registry of ``RepairStrategy``
entries. The first strategy whose ``matches`` accepts the error message
gets to ``repair`` the statement; a ``None`` repair (or no match) means the
statement is retried unchanged.
"""

import logging
import re
from abc import ABC, abstractmethod

from querypilot.sql.dialects import resolve_default_schema

logger = logging.getLogger(__name__)


class RepairStrategy(ABC):
    """One error class and the rewrite that fixes it."""

    name: str = "repair"

    @abstractmethod
    def matches(self, error: str) -> bool:
        """Return True when this strategy recognises the error message."""
        pass  # pragma: no cover - abstract method

    @abstractmethod
    def repair(self, sql: str, database_type: str, database_name: str | None = None) -> str | None:
        """Return rewritten SQL, or None when nothing can be changed."""
        pass  # pragma: no cover - abstract method


class MissingTableRepair(RepairStrategy):
    """
    Qualify the first unqualified ``FROM <table>`` with the dialect default schema.

    Recognises "table ... not found", "relation ... does not exist" and SQL
    Server's "Invalid object name" messages. A FROM inside a function's
    arguments is not a table reference and is skipped.
    """

    name = "missing_table"

    _SUBJECTS = ("table", "relation")
    _CONDITIONS = ("not found", "does not exist", "doesn't exist")
    # Identifier not followed by a dot, i.e. not already schema-qualified
    _FROM_PATTERN = re.compile(r"\bFROM\s+(\w+)\b(?!\s*\.)", re.IGNORECASE)

    def matches(self, error: str) -> bool:
        lowered = error.lower()
        if "invalid object name" in lowered:
            return True
        return any(subject in lowered for subject in self._SUBJECTS) and any(
            condition in lowered for condition in self._CONDITIONS
        )

    def repair(self, sql: str, database_type: str, database_name: str | None = None) -> str | None:
        schema = resolve_default_schema(database_type, database_name)
        for match in self._FROM_PATTERN.finditer(sql):
            # EXTRACT(YEAR FROM col), SUBSTRING(s FROM 2), TRIM(x FROM s)
            if _inside_function_call(sql, match.start()):
                continue
            return f"{sql[: match.start()]}FROM {schema}.{match.group(1)}{sql[match.end() :]}"
        return None


def _inside_function_call(sql: str, position: int) -> bool:
    """True when ``position`` is in a parenthesised list that is not a subquery."""
    open_parens: list[int] = []
    quote: str | None = None
    for index, char in enumerate(sql[:position]):
        if quote:
            if char == quote:
                quote = None
        elif char in "'\"":
            quote = char
        elif char == "(":
            open_parens.append(index)
        elif char == ")" and open_parens:
            open_parens.pop()
    if not open_parens:
        return False
    inner = sql[open_parens[-1] + 1 :].lstrip().upper()
    return not inner.startswith(("SELECT", "WITH"))


class ErrorClassifier:
    """Ordered registry of repair strategies."""

    def __init__(self, strategies: list[RepairStrategy] | None = None):
        self.strategies: list[RepairStrategy] = (
            list(strategies) if strategies is not None else [MissingTableRepair()]
        )

    def register(self, strategy: RepairStrategy) -> None:
        self.strategies.append(strategy)

    def classify(self, error: str) -> RepairStrategy | None:
        for strategy in self.strategies:
            if strategy.matches(error):
                return strategy
        return None

    def repair(
        self,
        sql: str,
        error: str,
        database_type: str,
        database_name: str | None = None,
    ) -> str | None:
        """Apply the matching strategy; None when the error is not auto-repairable."""
        strategy = self.classify(error)
        if strategy is None:
            return None
        repaired = strategy.repair(sql, database_type, database_name)
        if repaired and repaired != sql:
            logger.info(
                f"Applied {strategy.name} repair",
                extra={"strategy": strategy.name, "original_sql": sql, "repaired_sql": repaired},
            )
            return repaired
        return None
