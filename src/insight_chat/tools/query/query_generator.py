from __future__ import annotations

from loguru import logger

from insight_chat.errors import UpstreamError
from insight_chat.provider import LLMProvider

UNICORNS_SCHEMA = """\
unicorns (
  id SERIAL PRIMARY KEY,
  company VARCHAR(255) NOT NULL UNIQUE,
  valuation DECIMAL(10, 2) NOT NULL,
  date_joined DATE,
  country VARCHAR(255) NOT NULL,
  city VARCHAR(255) NOT NULL,
  industry VARCHAR(255) NOT NULL,
  select_investors TEXT NOT NULL
);"""

INDUSTRIES = (
    "healthcare & life sciences",
    "consumer & retail",
    "financial services",
    "enterprise tech",
    "insurance",
    "media & entertainment",
    "industrials",
    "health",
)


def build_query_system_prompt(schema: str = UNICORNS_SCHEMA) -> str:
    industries = "\n".join(f"- {name}" for name in INDUSTRIES)
    return f"""\
You are a SQL (postgres) and data visualization expert. Your job is to help the user \
write a SQL query to retrieve the data they need. The table schema is as follows:

{schema}

Only retrieval queries are allowed.

For things like industry, company names and other string fields, use the ILIKE operator \
and convert both the search term and the field to lowercase using LOWER() function. \
For example: LOWER(industry) ILIKE LOWER('%search_term%').

Note: select_investors is a comma-separated list of investors. Trim whitespace to ensure \
you're grouping properly. Note, some fields may be null or have only one value.
When answering questions about a specific field, ensure you are selecting the identifying \
column (ie. what is Vercel's valuation would select company and valuation).

The industries available are:
{industries}

If the user asks for a category that is not in the list, infer based on the list above.

Note: valuation is in billions of dollars so 10b would be 10.0.
Note: if the user asks for a rate, return it as a decimal. For example, 0.1 would be 10%.

If the user asks for 'over time' data, return by year.

When searching for UK or USA, write out United Kingdom or United States respectively.

EVERY QUERY SHOULD RETURN QUANTITATIVE DATA THAT CAN BE PLOTTED ON A CHART! There should \
always be at least two columns. If the user asks for a single column, return the column \
and the count of the column."""


QUERY_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {"type": "string", "description": "A single PostgreSQL SELECT statement"},
    },
    "required": ["query"],
}


class QueryGenerator:
    def __init__(self, provider: LLMProvider, model: str, *, schema: str = UNICORNS_SCHEMA):
        self._provider = provider
        self._model = model
        self._system_prompt = build_query_system_prompt(schema)

    async def generate_query(self, request: str) -> str:
        try:
            result = await self._provider.create_structured(
                self._model,
                self._system_prompt,
                f"Generate the query necessary to retrieve the data the user wants: {request}",
                "sql_query",
                QUERY_SCHEMA,
            )
        except Exception as ex:
            raise UpstreamError(f"Failed to generate query: {ex}") from ex

        query = str(result.get("query", "")).strip()
        if not query:
            raise UpstreamError("Failed to generate query: the model returned an empty query")
        logger.info(f"Generated SQL: {query}")
        return query
