import asyncio
import unittest
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import psycopg

from insight_chat.errors import ProvisioningError, UpstreamError
from insight_chat.tools.query.query_runner import PostgresQueryRunner


class _FakeCursor:
    def __init__(self, rows: list[dict], error: Exception | None = None) -> None:
        self._rows = rows
        self._error = error
        self.description = [("col",)] if rows else None
        self.executed: list[str] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def execute(self, query: str) -> None:
        self.executed.append(query)
        if self._error is not None:
            raise self._error

    async def fetchall(self) -> list[dict]:
        return self._rows


class _FakeConnection:
    def __init__(self, cursor: _FakeCursor) -> None:
        self._cursor = cursor
        self.read_only: bool | None = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def set_read_only(self, value: bool) -> None:
        self.read_only = value

    def cursor(self) -> _FakeCursor:
        return self._cursor


class PostgresQueryRunnerTests(unittest.TestCase):
    def _run(self, cursor: _FakeCursor):
        conn = _FakeConnection(cursor)
        with patch.object(psycopg.AsyncConnection, "connect", new=AsyncMock(return_value=conn)) as connect:
            try:
                return asyncio.run(PostgresQueryRunner("postgresql://db").run("SELECT 1")), conn
            finally:
                self.assertEqual("postgresql://db", connect.await_args.args[0])

    def test_rows_are_converted_to_json_scalars(self) -> None:
        cursor = _FakeCursor([{"company": "Vercel", "valuation": Decimal("2.50"), "date_joined": date(2021, 11, 23)}])

        result, conn = self._run(cursor)

        self.assertTrue(conn.read_only)
        self.assertEqual(["SELECT 1"], cursor.executed)
        self.assertEqual([{"company": "Vercel", "valuation": 2.5, "date_joined": "2021-11-23"}], result.rows)

    def test_statement_without_result_set(self) -> None:
        result, _ = self._run(_FakeCursor([]))
        self.assertEqual([], result.rows)

    def test_missing_table_is_provisioning_error(self) -> None:
        cursor = _FakeCursor([], error=psycopg.errors.UndefinedTable('relation "unicorns" does not exist'))
        with self.assertRaisesRegex(ProvisioningError, "Seed the database"):
            self._run(cursor)

    def test_other_database_errors_are_upstream_errors(self) -> None:
        cursor = _FakeCursor([], error=psycopg.OperationalError("server closed the connection"))
        with self.assertRaises(UpstreamError):
            self._run(cursor)


if __name__ == "__main__":
    unittest.main()
