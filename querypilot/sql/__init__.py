"""SQL execution helpers: dialect conventions, read-only guard, repair and retry."""

from querypilot.sql.adapter import SQLExecutor, coerce_result, execute_sql_with_retry
from querypilot.sql.dialects import normalize_dialect, resolve_default_schema, row_limit_syntax
from querypilot.sql.guard import check_read_only
from querypilot.sql.repair import ErrorClassifier, MissingTableRepair, RepairStrategy

__all__ = [
    "SQLExecutor",
    "coerce_result",
    "execute_sql_with_retry",
    "normalize_dialect",
    "resolve_default_schema",
    "row_limit_syntax",
    "check_read_only",
    "ErrorClassifier",
    "MissingTableRepair",
    "RepairStrategy",
]
