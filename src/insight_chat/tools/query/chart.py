from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any

from loguru import logger

from insight_chat.errors import UpstreamError, ValidationError
from insight_chat.provider import LLMProvider
from insight_chat.tools.query.query_result import QueryResult

CHART_TYPES: tuple[str, ...] = ("bar", "line", "area", "pie")

CHART_SCHEMA: dict[str, Any] = {
    "type": "object",
    "description": "Chart configuration object",
    "properties": {
        "description": {
            "type": "string",
            "description": (
                "Describe the chart. What is it showing? What is interesting about "
                "the way the data is displayed?"
            ),
        },
        "takeaway": {"type": "string", "description": "What is the main takeaway from the chart?"},
        "type": {"type": "string", "enum": list(CHART_TYPES), "description": "Type of chart"},
        "title": {"type": "string"},
        "xKey": {"type": "string", "description": "Key for x-axis or category"},
        "yKeys": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Key(s) for y-axis values this is typically the quantitative column",
        },
        "multipleLines": {
            "type": "boolean",
            "description": "For line charts only: whether the chart is comparing groups of data.",
        },
        "measurementColumn": {
            "type": "string",
            "description": (
                "For line charts only: key for quantitative y-axis column to measure "
                "against (eg. values, counts etc.)"
            ),
        },
        "lineCategories": {
            "type": "array",
            "items": {"type": "string"},
            "description": (
                "For line charts only: Categories used to compare different lines or data "
                "series. Each category represents a distinct line in the chart."
            ),
        },
        "legend": {"type": "boolean", "description": "Whether to show legend"},
    },
    "required": ["description", "takeaway", "type", "title", "xKey", "yKeys", "legend"],
}

_SYSTEM_PROMPT = "You are a data visualization expert."

_EXAMPLE_CONFIG = """\
{
  "type": "pie",
  "xKey": "month",
  "yKeys": ["sales", "profit", "expenses"],
  "legend": true
}"""


def assign_colors(y_keys: list[str]) -> dict[str, str]:
    """Colors depend only on each key's position among the value keys."""
    return {key: f"hsl(var(--chart-{index + 1}))" for index, key in enumerate(y_keys)}


@dataclass(frozen=True)
class ChartConfig:
    type: str
    title: str
    x_key: str
    y_keys: list[str]
    legend: bool
    description: str = ""
    takeaway: str = ""
    colors: dict[str, str] = field(default_factory=dict)
    multiple_lines: bool | None = None
    measurement_column: str | None = None
    line_categories: list[str] | None = None

    @classmethod
    def from_generated(cls, data: dict[str, Any]) -> ChartConfig:
        y_keys = data.get("yKeys") or []
        if isinstance(y_keys, str):
            y_keys = [y_keys]
        return cls(
            type=str(data.get("type", "")).strip().lower(),
            title=str(data.get("title", "")),
            x_key=str(data.get("xKey", "")),
            y_keys=[str(k) for k in y_keys],
            legend=bool(data.get("legend", True)),
            description=str(data.get("description", "")),
            takeaway=str(data.get("takeaway", "")),
            multiple_lines=data.get("multipleLines"),
            measurement_column=data.get("measurementColumn"),
            line_categories=data.get("lineCategories"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": self.type,
            "title": self.title,
            "xKey": self.x_key,
            "yKeys": list(self.y_keys),
            "colors": dict(self.colors),
            "legend": self.legend,
            "description": self.description,
            "takeaway": self.takeaway,
        }
        if self.multiple_lines is not None:
            out["multipleLines"] = self.multiple_lines
        if self.measurement_column is not None:
            out["measurementColumn"] = self.measurement_column
        if self.line_categories is not None:
            out["lineCategories"] = list(self.line_categories)
        return out


def validate_chart_config(config: ChartConfig, result: QueryResult) -> None:
    if config.type not in CHART_TYPES:
        raise ValidationError(f"Failed to generate chart suggestion: unsupported chart type {config.type!r}")
    if not config.y_keys:
        raise ValidationError("Failed to generate chart suggestion: no value keys")
    columns = set(result.columns)
    if config.multiple_lines and config.measurement_column:
        # yKeys name category values of a pivoted series, not columns.
        required = [config.x_key, config.measurement_column]
    else:
        required = [config.x_key, *config.y_keys]
    unknown = [k for k in required if k not in columns]
    if columns and unknown:
        raise ValidationError(
            f"Failed to generate chart suggestion: keys {unknown} are not result columns {sorted(columns)}"
        )


class ChartSynthesizer:
    def __init__(self, provider: LLMProvider, model: str):
        self._provider = provider
        self._model = model

    async def generate(self, result: QueryResult, request: str) -> ChartConfig:
        prompt = f"""\
Given the following data from a SQL query result, generate the chart config that best \
visualises the data and answers the users query.
For multiple groups use multi-lines.

Here is an example complete config:
{_EXAMPLE_CONFIG}

User Query:
{request}

Data:
{json.dumps(result.rows, indent=2)}"""
        try:
            generated = await self._provider.create_structured(
                self._model, _SYSTEM_PROMPT, prompt, "chart_config", CHART_SCHEMA
            )
        except Exception as ex:
            raise UpstreamError(f"Failed to generate chart suggestion: {ex}") from ex

        config = ChartConfig.from_generated(generated)
        validate_chart_config(config, result)
        logger.info(f"Chart config: type={config.type}, x={config.x_key}, y={config.y_keys}")
        return replace(config, colors=assign_colors(config.y_keys))
