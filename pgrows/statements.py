"""
SQL text builders for the query helpers.

Each builder returns ``(sql_text, params)`` where ``sql_text`` uses
PostgreSQL native positional placeholders (``$1``, ``$2``, ...) and
``params`` is the matching list of values. Values never appear in the
SQL text. Table and column names do, so they are checked against a
strict identifier pattern first.
"""

import re
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from pgrows.errors import QueryError

Statement = Tuple[str, List[Any]]

_SEGMENT = r'(?:[A-Za-z_][A-Za-z0-9_$]*|"(?:[^"\x00]|"")+")'
# name or "quoted name", optionally schema-qualified; "" escapes a quote inside quotes
_IDENTIFIER_RE = re.compile(rf"{_SEGMENT}(?:\.{_SEGMENT})?")


def check_identifier(name: Any, kind: str = "column") -> str:
    """Return ``name`` if it is a plain or quoted, optionally schema-qualified identifier, raise QueryError otherwise."""
    if not isinstance(name, str) or not _IDENTIFIER_RE.fullmatch(name):
        raise QueryError(f"Invalid {kind} name: {name!r}")
    return name


def placeholder(index: int) -> str:
    return f"${index}"


def _equality_list(columns: Sequence[str], start: int, separator: str) -> str:
    """``a = $start, b = $start+1`` style list, joined by ``separator``."""
    return separator.join(
        f"{check_identifier(column)} = {placeholder(start + i)}"
        for i, column in enumerate(columns)
    )


def build_insert(
    table: str,
    rows: Sequence[Mapping[str, Any]],
    conflict: Optional[Sequence[str]] = None,
) -> Statement:
    """
    Multi-row INSERT ... RETURNING *.

    The column list comes from the first row. Row ``r`` column ``c`` of
    ``k`` columns is bound to ``$(r*k + c + 1)``. With ``conflict``
    columns, an ON CONFLICT clause overwrites every inserted column from
    EXCLUDED.

    Raises:
        QueryError: if ``rows`` is empty, the first row has no columns,
            a later row has a different key set, or a name is not a valid
            identifier.
    """
    if not rows:
        raise QueryError("Insert requires at least one row")

    check_identifier(table, "table")
    columns = list(rows[0].keys())
    if not columns:
        raise QueryError(f"Insert into {table}: first row has no columns")
    for column in columns:
        check_identifier(column)

    expected = set(columns)
    width = len(columns)
    params: List[Any] = []
    value_groups: List[str] = []
    for row_index, row in enumerate(rows):
        if set(row.keys()) != expected:
            raise QueryError(
                f"Insert into {table}: row {row_index} has columns {sorted(row.keys())}, "
                f"expected {sorted(expected)} from the first row"
            )
        params.extend(row[column] for column in columns)
        group = ", ".join(placeholder(row_index * width + i + 1) for i in range(width))
        value_groups.append(f"({group})")

    parts = [
        f"INSERT INTO {table} ({', '.join(columns)})",
        f"VALUES {', '.join(value_groups)}",
    ]
    if conflict:
        targets = ", ".join(check_identifier(column) for column in conflict)
        assignments = ", ".join(f"{column} = EXCLUDED.{column}" for column in columns)
        parts.append(f"ON CONFLICT ({targets}) DO UPDATE SET {assignments}")
    parts.append("RETURNING *")
    return " ".join(parts), params


def build_update(
    table: str,
    where: Mapping[str, Any],
    data: Mapping[str, Any],
) -> Statement:
    """
    UPDATE ... SET ... WHERE ... RETURNING *.

    ``data`` values take ``$1..$N``, ``where`` values ``$N+1..$N+M``.
    """
    check_identifier(table, "table")
    if not data:
        raise QueryError(f"Update of {table}: no columns to set")
    if not where:
        raise QueryError(f"Update of {table}: empty where clause")

    set_columns = list(data.keys())
    where_columns = list(where.keys())
    sql_text = (
        f"UPDATE {table} SET {_equality_list(set_columns, 1, ', ')} "
        f"WHERE {_equality_list(where_columns, len(set_columns) + 1, ' AND ')} "
        f"RETURNING *"
    )
    return sql_text, [data[c] for c in set_columns] + [where[c] for c in where_columns]


def build_delete(table: str, where: Mapping[str, Any]) -> Statement:
    check_identifier(table, "table")
    if not where:
        raise QueryError(f"Delete from {table}: empty where clause")

    columns = list(where.keys())
    sql_text = f"DELETE FROM {table} WHERE {_equality_list(columns, 1, ' AND ')}"
    return sql_text, [where[c] for c in columns]


def build_select(
    table: str,
    where: Optional[Mapping[str, Any]] = None,
    columns: Optional[Sequence[str]] = None,
) -> Statement:
    check_identifier(table, "table")
    column_list = ", ".join(check_identifier(c) for c in columns) if columns else "*"
    sql_text = f"SELECT {column_list} FROM {table}"
    if not where:
        return sql_text, []

    where_columns = list(where.keys())
    sql_text += f" WHERE {_equality_list(where_columns, 1, ' AND ')}"
    return sql_text, [where[c] for c in where_columns]
