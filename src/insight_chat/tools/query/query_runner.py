from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

import psycopg
from loguru import logger
from psycopg.rows import dict_row

from insight_chat.errors import ProvisioningError, UpstreamError
from insight_chat.tools.query.query_result import QueryResult, Scalar

PROVISIONING_MESSAGE = (
    "The unicorns table does not exist yet. Seed the database before querying it."
)


def _to_scalar(value: Any) -> Scalar:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


class PostgresQueryRunner:
    """Executes already-validated SQL on a fresh read-only connection."""

    def __init__(self, dsn: str):
        self._dsn = dsn

    async def run(self, query: str) -> QueryResult:
        logger.debug(f"Executing SQL: {query}")
        try:
            async with await psycopg.AsyncConnection.connect(self._dsn, row_factory=dict_row) as conn:
                await conn.set_read_only(True)
                async with conn.cursor() as cur:
                    await cur.execute(query)
                    rows = await cur.fetchall() if cur.description else []
        except psycopg.errors.UndefinedTable as ex:
            logger.warning(f"Query hit a missing table: {ex}")
            raise ProvisioningError(PROVISIONING_MESSAGE) from ex
        except psycopg.Error as ex:
            raise UpstreamError(f"Query failed: {ex}") from ex

        logger.info(f"Query returned {len(rows)} row(s)")
        return QueryResult(rows=[{k: _to_scalar(v) for k, v in row.items()} for row in rows])
