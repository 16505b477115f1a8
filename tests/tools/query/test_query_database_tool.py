import asyncio
import json
import unittest

from insight_chat.errors import ProvisioningError, UpstreamError, ValidationError
from insight_chat.tools.query.chart import ChartSynthesizer
from insight_chat.tools.query.query_database_tool import QueryDatabaseTool
from insight_chat.tools.query.query_gate import QueryGate
from insight_chat.tools.query.query_generator import QueryGenerator, build_query_system_prompt
from insight_chat.tools.query.query_result import QueryResult
from tests.fakes import ScriptedProvider


class _StaticRunner:
    def __init__(self, rows: list[dict] | None = None, error: Exception | None = None) -> None:
        self._rows = rows or []
        self._error = error
        self.queries: list[str] = []

    async def run(self, query: str) -> QueryResult:
        self.queries.append(query)
        if self._error is not None:
            raise self._error
        return QueryResult(rows=self._rows)


_CHART = {
    "description": "Valuation of Vercel",
    "takeaway": "Vercel is worth 2.5b",
    "type": "bar",
    "title": "Vercel valuation",
    "xKey": "company",
    "yKeys": ["valuation"],
    "legend": False,
}


def _tool(provider: ScriptedProvider, runner: _StaticRunner) -> QueryDatabaseTool:
    return QueryDatabaseTool(
        QueryGenerator(provider, "m"),
        QueryGate(runner),
        ChartSynthesizer(provider, "m"),
    )


class QueryDatabaseToolTests(unittest.TestCase):
    def test_returns_query_rows_columns_and_chart(self) -> None:
        provider = ScriptedProvider(structured=[
            {"query": "SELECT company, valuation FROM unicorns WHERE LOWER(company) ILIKE LOWER('%vercel%')"},
            _CHART,
        ])
        runner = _StaticRunner([{"company": "Vercel", "valuation": 2.5}])

        payload = json.loads(asyncio.run(_tool(provider, runner).execute({"query": "What is Vercel's valuation?"})))

        self.assertTrue(payload["query"].startswith("SELECT company"))
        self.assertEqual([{"company": "Vercel", "valuation": 2.5}], payload["results"])
        self.assertEqual(["company", "valuation"], payload["columns"])
        self.assertEqual({"valuation": "hsl(var(--chart-1))"}, payload["config"]["colors"])
        self.assertNotIn("chart_error", payload)
        self.assertEqual(["sql_query", "chart_config"], [c["schema_name"] for c in provider.structured_calls])

    def test_empty_result_has_no_chart(self) -> None:
        provider = ScriptedProvider(structured=[{"query": "SELECT company, valuation FROM unicorns WHERE 1 = 0"}])

        payload = json.loads(asyncio.run(_tool(provider, _StaticRunner([])).execute({"query": "nothing"})))

        self.assertEqual([], payload["results"])
        self.assertEqual([], payload["columns"])
        self.assertIsNone(payload["config"])
        self.assertEqual(1, len(provider.structured_calls))

    def test_chart_failure_keeps_rows(self) -> None:
        provider = ScriptedProvider(structured=[
            {"query": "SELECT company, valuation FROM unicorns"},
            {**_CHART, "type": "radar"},
        ])

        payload = json.loads(asyncio.run(
            _tool(provider, _StaticRunner([{"company": "Vercel", "valuation": 2.5}])).execute({"query": "q"})
        ))

        self.assertEqual(1, len(payload["results"]))
        self.assertIsNone(payload["config"])
        self.assertIn("Failed to generate chart suggestion", payload["chart_error"])

    def test_write_query_is_rejected_before_execution(self) -> None:
        provider = ScriptedProvider(structured=[{"query": "DROP TABLE unicorns"}])
        runner = _StaticRunner()

        with self.assertRaises(ValidationError):
            asyncio.run(_tool(provider, runner).execute({"query": "delete everything"}))

        self.assertEqual([], runner.queries)

    def test_generation_failure_is_upstream_error(self) -> None:
        provider = ScriptedProvider(structured=[RuntimeError("timeout")])
        with self.assertRaisesRegex(UpstreamError, "Failed to generate query"):
            asyncio.run(_tool(provider, _StaticRunner()).execute({"query": "q"}))

    def test_missing_table_propagates_provisioning_error(self) -> None:
        provider = ScriptedProvider(structured=[{"query": "SELECT * FROM unicorns"}])
        runner = _StaticRunner(error=ProvisioningError("seed first"))

        with self.assertRaises(ProvisioningError):
            asyncio.run(_tool(provider, runner).execute({"query": "q"}))

    def test_empty_request_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            asyncio.run(_tool(ScriptedProvider(), _StaticRunner()).execute({"query": "  "}))


class QueryPromptTests(unittest.TestCase):
    def test_prompt_describes_table_and_rules(self) -> None:
        prompt = build_query_system_prompt()
        self.assertIn("unicorns (", prompt)
        self.assertIn("ILIKE", prompt)
        self.assertIn("enterprise tech", prompt)


if __name__ == "__main__":
    unittest.main()
