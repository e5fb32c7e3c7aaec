"""
Read-only guard.

Runs before every execution: the text must be exactly one SELECT
statement (a CTE is fine when its main statement is a SELECT) and must not
use file/shell side channels. No LLM calls, no database access.
"""

import re

import sqlparse
from sqlparse.tokens import DDL, DML, Comment, Keyword, String

DANGEROUS_PATTERNS = [
    r"\bINTO\s+OUTFILE\b",
    r"\bINTO\s+DUMPFILE\b",
    r"\bLOAD_FILE\s*\(",
    r"\bxp_cmdshell\b",
    r"\bsp_executesql\b",
    r"\bEXEC(UTE)?\s*\(",
    r"\bpg_read_file\s*\(",
    r"\bpg_sleep\s*\(",
    r"\bdblink\s*\(",
    r"\bOPENROWSET\s*\(",
]

_WRITE_KEYWORDS = {
    "INSERT", "UPDATE", "DELETE", "MERGE", "UPSERT",
    "DROP", "CREATE", "ALTER", "TRUNCATE",
}

# INTO targets that are file side channels, reported by DANGEROUS_PATTERNS
_FILE_TARGETS = {"OUTFILE", "DUMPFILE"}


def check_read_only(sql: str) -> str | None:
    """
    Validate that ``sql`` is a single read-only SELECT.

    Returns:
        None when the statement is allowed, otherwise a short reason.
    """
    statements = [stmt for stmt in sqlparse.parse(sql) if str(stmt).strip(" \t\r\n;")]
    if not statements:
        return "Empty SQL statement"
    if len(statements) > 1:
        return "Multiple SQL statements detected - only a single SELECT is allowed"

    stmt = statements[0]
    statement_type = stmt.get_type()
    if statement_type != "SELECT":
        first_token = stmt.token_first(skip_ws=True, skip_cm=True)
        found = first_token.value.upper() if first_token is not None else "nothing"
        if first_token is not None and first_token.value.upper() == "WITH":
            found = _main_keyword_after_cte(stmt)
        return f"Only SELECT queries are allowed, found: {found}"

    for token in stmt.flatten():
        if token.ttype in (DML, DDL) and token.value.upper() in _WRITE_KEYWORDS:
            return f"Write keyword not allowed in a read-only query: {token.value.upper()}"
    # sqlparse reports SELECT for "SELECT ... INTO new_table" (SQL Server)
    if _selects_into_table(stmt):
        return "SELECT ... INTO writes data and is not allowed"

    code = _code_text(stmt)
    for pattern in DANGEROUS_PATTERNS:
        if re.search(pattern, code, re.IGNORECASE):
            return f"Dangerous construct detected: matches pattern '{pattern}'"

    return None


def _code_text(stmt) -> str:
    """Statement text with string literals and comments blanked out."""
    return "".join(
        " " if token.ttype in String.Single or token.ttype in Comment else token.value
        for token in stmt.flatten()
    )


def _selects_into_table(stmt) -> bool:
    tokens = [
        token
        for token in stmt.flatten()
        if not token.is_whitespace and token.ttype not in Comment
    ]
    for index, token in enumerate(tokens):
        if token.ttype in Keyword and token.value.upper() == "INTO":
            target = tokens[index + 1].value.upper() if index + 1 < len(tokens) else ""
            if target not in _FILE_TARGETS:
                return True
    return False


def _main_keyword_after_cte(stmt) -> str:
    """Find the DML keyword that follows a WITH clause (e.g. WITH t AS (...) DELETE ...)."""
    seen_with = False
    for token in stmt.tokens:
        if token.is_whitespace:
            continue
        if token.ttype is Keyword.CTE:
            seen_with = True
            continue
        if seen_with and token.ttype in (DML, Keyword.DML, Keyword):
            return token.value.upper()
    return "UNKNOWN"
