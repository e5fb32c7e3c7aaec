"""SQL dialect conventions: default schema and row-limiting syntax."""

from typing import Literal

Dialect = Literal["mssql", "postgresql", "mysql", "oracle", "unknown"]

_ALIASES: dict[str, Dialect] = {
    "mssql": "mssql",
    "sqlserver": "mssql",
    "sql server": "mssql",
    "sql_server": "mssql",
    "azuresql": "mssql",
    "postgresql": "postgresql",
    "postgres": "postgresql",
    "pg": "postgresql",
    "mysql": "mysql",
    "mariadb": "mysql",
    "oracle": "oracle",
}


def normalize_dialect(database_type: str | None) -> Dialect:
    """Map a free-form database type onto a known dialect family."""
    return _ALIASES.get((database_type or "").strip().lower(), "unknown")


def resolve_default_schema(database_type: str | None, database_name: str | None = None) -> str:
    """
    Return the schema name assumed when the model omits one.

    SQL Server uses ``dbo``, Postgres-family uses ``public``, MySQL-family
    uses the database name itself (``mysql`` when it is not known). Unknown
    dialects fall back to the SQL Server default.
    """
    dialect = normalize_dialect(database_type)
    if dialect == "postgresql" or dialect == "oracle":
        return "public"
    if dialect == "mysql":
        return database_name or "mysql"
    return "dbo"


def row_limit_syntax(database_type: str | None) -> str:
    """Human-readable row-limiting clause for prompts (``TOP``/``FETCH FIRST``/``LIMIT``)."""
    dialect = normalize_dialect(database_type)
    if dialect == "mssql":
        return "SELECT TOP 100 ..."
    if dialect == "oracle":
        return "... FETCH FIRST 100 ROWS ONLY"
    return "... LIMIT 100"
