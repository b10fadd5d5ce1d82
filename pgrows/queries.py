"""
Query helpers running over a caller-held connection.

The caller owns the connection and releases it:

    async with manager.connection() as conn:
        rows = await query(conn, "select * from users where id = any($1)", [[1, 2, 3]])
        await insert(conn, "users", [{"name": "John Doe"}])

Statements use native ``$n`` placeholders, so they run through an
AsyncRawCursor. Rows come back as dictionaries.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from psycopg import AsyncConnection, AsyncRawCursor
from psycopg.rows import dict_row

from pgrows.errors import QueryError
from pgrows.logger import setup_logger
from pgrows.statements import build_delete, build_insert, build_select, build_update

logger = setup_logger(__name__, include_location=True)

Row = Dict[str, Any]


def _sql_summary(command: str) -> str:
    trimmed = (command or "").strip()
    if not trimmed:
        return "UNKNOWN len=0"
    operation = trimmed.split(None, 1)[0].upper()
    return f"{operation} len={len(trimmed)}"


async def query(
    conn: AsyncConnection,
    sql_text: str,
    params: Optional[Sequence[Any]] = None,
) -> List[Row]:
    """
    Run a statement and return its rows.

    Args:
        conn: Connection to run on
        sql_text: SQL with ``$1``, ``$2``, ... placeholders
        params: Values bound to the placeholders, in order

    Returns:
        Result rows in the order the server sent them; ``[]`` for
        statements without a result set

    Raises:
        QueryError: if the statement fails for any reason
    """
    values = list(params) if params else []
    logger.debug(f"Executing {_sql_summary(sql_text)} with {len(values)} params")
    try:
        async with AsyncRawCursor(conn, row_factory=dict_row) as cur:
            # no params means simple protocol, which allows multi-statement scripts
            await cur.execute(sql_text, values or None)
            if cur.description is None:
                return []
            return await cur.fetchall()
    except Exception as e:
        error = QueryError.from_exception(e, sql_text, values)
        logger.debug(f"{_sql_summary(sql_text)} failed: {error.message.splitlines()[0]}")
        raise error from e


async def insert(
    conn: AsyncConnection,
    table: str,
    rows: Sequence[Mapping[str, Any]],
    conflict: Optional[Sequence[str]] = None,
) -> List[Row]:
    """
    Insert one or more rows and return them as stored.

    Every row must have the same keys as the first one. When ``conflict``
    names columns, rows clashing on them are updated instead (upsert).
    An empty ``rows`` returns ``[]`` without using the connection.
    """
    if not rows:
        return []
    sql_text, values = build_insert(table, rows, conflict)
    return await query(conn, sql_text, values)


async def update(
    conn: AsyncConnection,
    table: str,
    where: Mapping[str, Any],
    data: Mapping[str, Any],
) -> Row:
    """
    Update the row matching ``where`` with ``data`` and return it.

    Raises:
        QueryError: if no row matched
    """
    sql_text, values = build_update(table, where, data)
    rows = await query(conn, sql_text, values)
    if not rows:
        raise QueryError("Update failed: no rows affected", query=sql_text, params=values)
    return rows[0]


async def remove(
    conn: AsyncConnection,
    table: str,
    where: Mapping[str, Any],
) -> None:
    """Delete the rows matching ``where``. Matching nothing is fine."""
    sql_text, values = build_delete(table, where)
    await query(conn, sql_text, values)


async def select(
    conn: AsyncConnection,
    table: str,
    where: Optional[Mapping[str, Any]] = None,
    columns: Optional[Sequence[str]] = None,
) -> List[Row]:
    sql_text, values = build_select(table, where, columns)
    return await query(conn, sql_text, values)
