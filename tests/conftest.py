import pytest

import pgrows.queries as queries_module


class FakeConnection:
    """Records statements; hands out queued result sets (None = no result set)."""

    def __init__(self, results=None, error=None):
        self.results = list(results or [])
        self.error = error
        self.executed = []

    @property
    def statements(self):
        return [sql for sql, _ in self.executed]


class FakeRawCursor:
    def __init__(self, conn, row_factory=None):
        self.conn = conn
        self.row_factory = row_factory
        self.description = None
        self._rows = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, query, params=None):
        self.conn.executed.append((query, params))
        if self.conn.error is not None:
            raise self.conn.error
        rows = self.conn.results.pop(0) if self.conn.results else None
        if rows is None:
            self.description = None
            self._rows = []
        else:
            self.description = [("column",)]
            self._rows = rows

    async def fetchall(self):
        return list(self._rows)


@pytest.fixture(autouse=True)
def fake_raw_cursor(monkeypatch):
    monkeypatch.setattr(queries_module, "AsyncRawCursor", FakeRawCursor)
    return FakeRawCursor


@pytest.fixture
def make_conn():
    def _make(results=None, error=None):
        return FakeConnection(results=results, error=error)
    return _make
