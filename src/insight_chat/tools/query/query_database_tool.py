import json
from typing import Any

from loguru import logger

from insight_chat.errors import UpstreamError, ValidationError
from insight_chat.tools.query.chart import ChartSynthesizer
from insight_chat.tools.query.query_gate import QueryGate
from insight_chat.tools.query.query_generator import QueryGenerator


class QueryDatabaseTool:
    def __init__(self, generator: QueryGenerator, gate: QueryGate, charts: ChartSynthesizer) -> None:
        self._generator = generator
        self._gate = gate
        self._charts = charts

    @property
    def name(self) -> str:
        return "query_database"

    @property
    def description(self) -> str:
        return "Query the database to find relevant information for the user query."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The user query for which a corresponding SQL query needs to be created",
                },
            },
            "required": ["query"],
        }

    async def execute(self, tool_input: dict[str, Any]) -> str:
        request: str = str(tool_input.get("query", "")).strip()
        if not request:
            raise ValidationError("query must not be empty")

        sql = await self._generator.generate_query(request)
        result = await self._gate.execute(sql)

        payload: dict[str, Any] = {"query": sql, **result.to_payload(), "config": None}
        if result.rows:
            try:
                payload["config"] = (await self._charts.generate(result, request)).to_dict()
            except (ValidationError, UpstreamError) as ex:
                logger.warning(f"Chart generation failed: {ex}")
                payload["chart_error"] = str(ex)

        return json.dumps(payload)
