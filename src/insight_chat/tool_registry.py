from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from insight_chat.tool import Tool
from insight_chat.tools.weather_tool import GetWeatherTool


@dataclass(frozen=True)
class ToolGroup:
    enabled: Callable[[dict], bool]
    build: Callable[[dict], list[Tool]]


def _always(_: dict) -> bool:
    return True


def _base_tools(_: dict) -> list[Tool]:
    return [GetWeatherTool()]


def _documents_enabled(ctx: dict) -> bool:
    return ctx.get("documents") is not None and bool(ctx.get("user_id"))


def _document_tools(ctx: dict) -> list[Tool]:
    from insight_chat.tools.documents.create_document_tool import CreateDocumentTool
    from insight_chat.tools.documents.update_document_tool import UpdateDocumentTool

    args = (ctx["provider"], ctx["model"], ctx["documents"], ctx["user_id"])
    return [CreateDocumentTool(*args), UpdateDocumentTool(*args)]


def _retrieval_enabled(ctx: dict) -> bool:
    return ctx.get("embeddings") is not None and ctx.get("vector_store") is not None


def _retrieval_tools(ctx: dict) -> list[Tool]:
    from insight_chat.tools.retrieval.get_information_tool import GetInformationTool

    return [GetInformationTool(ctx["embeddings"], ctx["vector_store"])]


def _query_enabled(ctx: dict) -> bool:
    return ctx.get("query_runner") is not None


def _query_tools(ctx: dict) -> list[Tool]:
    from insight_chat.tools.query.chart import ChartSynthesizer
    from insight_chat.tools.query.query_database_tool import QueryDatabaseTool
    from insight_chat.tools.query.query_gate import QueryGate
    from insight_chat.tools.query.query_generator import QueryGenerator

    provider = ctx["provider"]
    model = ctx["model"]
    return [
        QueryDatabaseTool(
            QueryGenerator(provider, model),
            QueryGate(ctx["query_runner"], strict=bool(ctx.get("strict_sql"))),
            ChartSynthesizer(provider, model),
        )
    ]


_GROUPS = [
    ToolGroup(enabled=_always, build=_base_tools),
    ToolGroup(enabled=_documents_enabled, build=_document_tools),
    ToolGroup(enabled=_retrieval_enabled, build=_retrieval_tools),
    ToolGroup(enabled=_query_enabled, build=_query_tools),
]


def get_all(
    *,
    provider,
    model: str,
    user_id: str | None = None,
    documents=None,
    embeddings=None,
    vector_store=None,
    query_runner=None,
    strict_sql: bool = False,
) -> list[Tool]:
    """Build the tools for one turn; model-backed tools use the turn's model."""
    ctx = {
        "provider": provider,
        "model": model,
        "user_id": user_id,
        "documents": documents,
        "embeddings": embeddings,
        "vector_store": vector_store,
        "query_runner": query_runner,
        "strict_sql": strict_sql,
    }

    tools: list[Tool] = []
    for group in _GROUPS:
        if group.enabled(ctx):
            tools.extend(group.build(ctx))
    return tools
