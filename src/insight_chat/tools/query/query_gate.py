from __future__ import annotations

from typing import Protocol

from loguru import logger

from insight_chat.errors import ValidationError
from insight_chat.tools.query.query_result import QueryResult
from insight_chat.tools.query.sql_guard import check_read_only, check_single_select


class QueryRunner(Protocol):
    async def run(self, query: str) -> QueryResult: ...


class QueryGate:
    """Validates a candidate query and only then hands it to the runner."""

    def __init__(self, runner: QueryRunner, *, strict: bool = False):
        self._runner = runner
        self._strict = strict

    def validate(self, query: str) -> str:
        try:
            validated = check_read_only(query)
            if self._strict:
                validated = check_single_select(validated)
        except ValidationError as ex:
            logger.warning(f"Rejected generated SQL ({ex}): {query[:200]}")
            raise
        return validated

    async def execute(self, query: str) -> QueryResult:
        return await self._runner.run(self.validate(query))
