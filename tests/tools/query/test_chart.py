import asyncio
import unittest

from insight_chat.errors import UpstreamError, ValidationError
from insight_chat.tools.query.chart import ChartConfig, ChartSynthesizer, assign_colors
from insight_chat.tools.query.query_result import QueryResult
from tests.fakes import ScriptedProvider

_RESULT = QueryResult(rows=[
    {"country": "United States", "count": 10, "total_valuation": 100.5},
    {"country": "China", "count": 5, "total_valuation": 50.0},
])


def _generated(**overrides) -> dict:
    data = {
        "description": "Unicorns per country",
        "takeaway": "The US leads",
        "type": "bar",
        "title": "Unicorns by country",
        "xKey": "country",
        "yKeys": ["count", "total_valuation"],
        "legend": True,
    }
    data.update(overrides)
    return data


class AssignColorsTests(unittest.TestCase):
    def test_colors_follow_key_position(self) -> None:
        self.assertEqual(
            {"count": "hsl(var(--chart-1))", "total_valuation": "hsl(var(--chart-2))"},
            assign_colors(["count", "total_valuation"]),
        )

    def test_same_position_gets_same_color_regardless_of_name(self) -> None:
        self.assertEqual(assign_colors(["a", "b"])["a"], assign_colors(["z"])["z"])


class ChartConfigTests(unittest.TestCase):
    def test_to_dict_uses_camel_case_and_skips_unset_line_fields(self) -> None:
        config = ChartConfig.from_generated(_generated())
        out = config.to_dict()
        self.assertEqual("country", out["xKey"])
        self.assertEqual(["count", "total_valuation"], out["yKeys"])
        self.assertNotIn("multipleLines", out)

    def test_single_string_y_key_is_wrapped(self) -> None:
        self.assertEqual(["count"], ChartConfig.from_generated(_generated(yKeys="count")).y_keys)


class ChartSynthesizerTests(unittest.TestCase):
    def test_generate_assigns_colors_deterministically(self) -> None:
        provider = ScriptedProvider(structured=[_generated(colors={"count": "red"})])

        config = asyncio.run(ChartSynthesizer(provider, "m").generate(_RESULT, "unicorns per country"))

        self.assertEqual("bar", config.type)
        self.assertEqual(assign_colors(["count", "total_valuation"]), config.colors)
        self.assertEqual("chart_config", provider.structured_calls[0]["schema_name"])
        self.assertIn("unicorns per country", provider.structured_calls[0]["prompt"])

    def test_unsupported_type_is_rejected(self) -> None:
        provider = ScriptedProvider(structured=[_generated(type="scatter")])
        with self.assertRaises(ValidationError):
            asyncio.run(ChartSynthesizer(provider, "m").generate(_RESULT, "q"))

    def test_keys_must_be_result_columns(self) -> None:
        provider = ScriptedProvider(structured=[_generated(yKeys=["revenue"])])
        with self.assertRaises(ValidationError):
            asyncio.run(ChartSynthesizer(provider, "m").generate(_RESULT, "q"))

    def test_multi_line_config_keys_series_by_category_values(self) -> None:
        result = QueryResult(rows=[
            {"year": 2020, "industry": "fintech", "count": 3},
            {"year": 2020, "industry": "health", "count": 1},
            {"year": 2021, "industry": "fintech", "count": 4},
        ])
        provider = ScriptedProvider(structured=[_generated(
            type="line",
            xKey="year",
            yKeys=["fintech", "health"],
            multipleLines=True,
            measurementColumn="count",
            lineCategories=["fintech", "health"],
        )])

        config = asyncio.run(ChartSynthesizer(provider, "m").generate(result, "unicorns per year by industry"))

        self.assertTrue(config.multiple_lines)
        self.assertEqual(assign_colors(["fintech", "health"]), config.colors)

    def test_multi_line_measurement_column_must_exist(self) -> None:
        provider = ScriptedProvider(structured=[_generated(
            type="line",
            yKeys=["fintech"],
            multipleLines=True,
            measurementColumn="revenue",
        )])
        with self.assertRaises(ValidationError):
            asyncio.run(ChartSynthesizer(provider, "m").generate(_RESULT, "q"))

    def test_model_failure_becomes_upstream_error(self) -> None:
        provider = ScriptedProvider(structured=[RuntimeError("overloaded")])
        with self.assertRaisesRegex(UpstreamError, "Failed to generate chart suggestion"):
            asyncio.run(ChartSynthesizer(provider, "m").generate(_RESULT, "q"))


if __name__ == "__main__":
    unittest.main()
