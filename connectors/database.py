"""Read-only SQL connector (PostgreSQL via psycopg v3)."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import psycopg
from psycopg.rows import dict_row

import config as settings
from errors import ConfigurationError, ToolValidationError, TransportError
from .schemas import DatabaseConnector, QueryDatabaseArgs

log = logging.getLogger("parsec.connectors")

ALLOWED_VERBS = ("SELECT", "WITH", "EXPLAIN", "SHOW")

_VERB_RE = re.compile(r"^(%s)\b" % "|".join(ALLOWED_VERBS))
_LIMIT_RE = re.compile(r"\bLIMIT\b")


def _scan(sql: str) -> Tuple[str, str]:
    """Split *sql* into (text without comments, top-level text).

    The top-level text is the same length as the first, with quoted strings,
    quoted identifiers and everything inside parentheses blanked out, so
    keyword checks only see the outer statement.
    """
    clean: List[str] = []
    top: List[str] = []
    depth = 0
    i, n = 0, len(sql)
    while i < n:
        if sql.startswith("--", i):
            end = sql.find("\n", i)
            i = n if end == -1 else end
            clean.append(" ")
            top.append(" ")
            continue
        if sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            if end == -1:
                raise ToolValidationError("Unterminated comment in query")
            i = end + 2
            clean.append(" ")
            top.append(" ")
            continue

        ch = sql[i]
        if ch in ("'", '"'):
            end = i + 1
            while True:
                end = sql.find(ch, end)
                if end == -1:
                    raise ToolValidationError("Unterminated quoted string in query")
                if sql.startswith(ch * 2, end):  # doubled quote is an escape
                    end += 2
                    continue
                break
            clean.append(sql[i:end + 1])
            top.append(" " * (end + 1 - i))
            i = end + 1
            continue

        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(depth - 1, 0)
        clean.append(ch)
        top.append(ch if depth == 0 and ch not in "()" else " ")
        i += 1

    return "".join(clean), "".join(top)


def validate_query(query: str, row_limit: Optional[int] = None) -> str:
    """Return the statement that will actually run, or raise ToolValidationError.

    - drops comments, trims whitespace and trailing semicolons
    - only SELECT / WITH / EXPLAIN / SHOW are allowed
    - a semicolon left outside string literals means more than one statement
    - a LIMIT is appended when the outer statement has none (SHOW takes no LIMIT)
    """
    row_limit = settings.DB_ROW_LIMIT if row_limit is None else row_limit
    sql, _ = _scan(query or "")
    sql = sql.strip()
    while sql.endswith(";"):
        sql = sql[:-1].rstrip()
    if not sql:
        raise ToolValidationError("Query is empty")

    _, top = _scan(sql)
    outer = top.upper()
    verb = _VERB_RE.match(outer)
    if not verb:
        raise ToolValidationError(
            f"Only read-only queries are allowed ({', '.join(ALLOWED_VERBS)})"
        )

    if ";" in outer:
        raise ToolValidationError("Multiple statements are not allowed")

    if verb.group(1) != "SHOW" and not _LIMIT_RE.search(outer):
        sql = f"{sql} LIMIT {row_limit}"

    return sql


async def execute(args: QueryDatabaseArgs, config: Optional[DatabaseConnector]) -> Dict[str, Any]:
    """Run one validated statement inside a read-only transaction."""
    sql = validate_query(args.query)

    if config is None or not config.connection_string:
        raise ConfigurationError("Database not configured: add a connection string in the Connectors view")

    log.info("Running read-only query (%d chars)", len(sql))
    try:
        # Connection is closed on every exit path by the context manager
        async with await psycopg.AsyncConnection.connect(
            config.connection_string,
            connect_timeout=settings.DB_CONNECT_TIMEOUT_SECONDS,
            row_factory=dict_row,
        ) as conn:
            async with conn.transaction():
                await conn.execute("SET TRANSACTION READ ONLY")
                await conn.execute(
                    f"SET LOCAL statement_timeout = {int(settings.DB_STATEMENT_TIMEOUT_MS)}"
                )
                cur = await conn.execute(sql)
                rows = await cur.fetchall() if cur.description else []
    except psycopg.Error as e:
        raise TransportError(f"Database query failed: {e}") from e

    return {"rows": rows, "rowCount": len(rows)}
