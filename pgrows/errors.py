"""
Error type raised by pgrows.

Every failure surfaced by the pool manager and the query helpers is a
QueryError. Failures reported by the PostgreSQL server keep their
diagnostic fields in a DatabaseErrorDetails model so callers can inspect
them without parsing the message:

    try:
        await insert(conn, "users", [{"id": 1}])
    except QueryError as e:
        if e.is_database_error and e.details.code == "23505":
            ...
"""

import json
from typing import Any, List, Optional, Sequence

import psycopg
from pydantic import BaseModel, Field


NOT_AVAILABLE = "N/A"


class DatabaseErrorDetails(BaseModel):
    """Diagnostic fields reported by the server for a failed statement."""

    message: str = Field(description="Primary error message")
    code: Optional[str] = Field(None, description="SQLSTATE code (e.g. 23505)")
    detail: Optional[str] = Field(None, description="Secondary message with more detail")
    hint: Optional[str] = Field(None, description="Suggestion on how to fix the problem")
    position: Optional[int] = Field(None, description="1-based character offset into the query")

    @classmethod
    def from_exception(cls, error: BaseException) -> Optional["DatabaseErrorDetails"]:
        """
        Extract server diagnostics from a psycopg error.

        Returns None when the error carries none of code, detail, hint or
        position, i.e. when it did not come from the server (connection
        loss, driver-side failure, ...).
        """
        if not isinstance(error, psycopg.Error):
            return None

        diag = error.diag
        code = error.sqlstate or diag.sqlstate
        detail = diag.message_detail
        hint = diag.message_hint
        position = diag.statement_position
        if not any((code, detail, hint, position)):
            return None

        return cls(
            message=diag.message_primary or str(error),
            code=code,
            detail=detail,
            hint=hint,
            position=int(position) if position else None,
        )


def _or_na(value: Any) -> str:
    return NOT_AVAILABLE if value is None else str(value)


def serialize_params(params: Sequence[Any]) -> str:
    return json.dumps(list(params), default=str, ensure_ascii=False)


class QueryError(Exception):
    """Single error kind for pool and query failures."""

    def __init__(
        self,
        message: str,
        *,
        query: Optional[str] = None,
        params: Optional[Sequence[Any]] = None,
        details: Optional[DatabaseErrorDetails] = None,
    ):
        super().__init__(message)
        self.message = message
        self.query = query
        self.params: Optional[List[Any]] = list(params) if params is not None else None
        self.details = details

    @property
    def is_database_error(self) -> bool:
        return self.details is not None

    @classmethod
    def from_exception(
        cls,
        error: BaseException,
        query: str,
        params: Sequence[Any] = (),
    ) -> "QueryError":
        """
        Wrap a driver exception raised while running ``query``.

        Server errors get the full diagnostic message including the SQL
        text and the serialized parameters. Anything else only keeps the
        original message.
        """
        details = DatabaseErrorDetails.from_exception(error)
        if details is None:
            text = str(error).strip() or "unknown error"
            return cls(f"Query failed: {text}")

        message = "\n".join([
            f"Database Error: {details.message}",
            "",
            f"Code: {_or_na(details.code)}",
            f"Detail: {_or_na(details.detail)}",
            f"Hint: {_or_na(details.hint)}",
            f"Position: {_or_na(details.position)}",
            f"Query: {query}",
            f"Values: {serialize_params(params)}",
        ])
        return cls(message, query=query, params=params, details=details)
