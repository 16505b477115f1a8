from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from pathlib import Path

from loguru import logger
from qdrant_client import AsyncQdrantClient

from insight_chat.app_config import AppConfig, RuntimeEnv
from insight_chat.chat_service import ChatService
from insight_chat.logging_config import setup_logging
from insight_chat.memory import DocumentStore, MemoryStore, SessionManager
from insight_chat.models import ModelRegistry, parse_models
from insight_chat.provider import ProviderPool
from insight_chat.tool_registry import get_all
from insight_chat.tools.query.query_runner import PostgresQueryRunner
from insight_chat.tools.retrieval.embedding_provider import create_embedding_provider
from insight_chat.tools.retrieval.vector_store import QdrantVectorStore, create_qdrant_client


@dataclass
class AppRuntime:
    chat_service: ChatService
    models: ModelRegistry
    memory_store: MemoryStore
    qdrant_client: AsyncQdrantClient | None
    tool_names: list[str]
    log_descriptions: list[str]

    async def close(self) -> None:
        if self.qdrant_client is not None:
            await self.qdrant_client.close()
        self.memory_store.close()


def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    db_path = Path(app.chat_db_path)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    memory_store = MemoryStore(str(db_path))
    sessions = SessionManager(memory_store)
    documents = DocumentStore(memory_store)

    embedding_provider_name = env.embedding_provider or app.embedding_provider
    embedding_key = env.api_keys.get(embedding_provider_name, "")
    qdrant_client: AsyncQdrantClient | None = None
    embeddings = None
    vector_store = None
    if embedding_key:
        qdrant_client = create_qdrant_client(env.qdrant_url or app.qdrant_url, env.qdrant_api_key)
        embeddings = create_embedding_provider(
            embedding_provider_name,
            embedding_key,
            env.embedding_model or app.embedding_model,
        )
        vector_store = QdrantVectorStore(qdrant_client, env.qdrant_collection or app.qdrant_collection)
    else:
        logger.warning(f"No API key for embedding provider {embedding_provider_name!r}; get_information disabled")

    query_runner = PostgresQueryRunner(env.postgres_url) if env.postgres_url else None
    if query_runner is None:
        logger.warning("POSTGRES_URL is not set; query_database disabled")

    tool_factory = partial(
        get_all,
        documents=documents,
        embeddings=embeddings,
        vector_store=vector_store,
        query_runner=query_runner,
        strict_sql=app.strict_sql_validation,
    )

    base_urls = {"ollama": app.ollama_base_url} if app.ollama_base_url else {}
    providers = ProviderPool(env.api_keys, base_urls)
    models = ModelRegistry(parse_models(app.models))

    chat_service = ChatService(
        sessions=sessions,
        models=models,
        providers=providers,
        tool_factory=tool_factory,
        max_tokens=app.max_tokens,
        temperature=app.temperature,
        max_tool_result_chars=app.max_tool_result_chars,
    )

    # Tool names only; the instances built here are never executed.
    tool_names = [t.name for t in tool_factory(provider=None, model=app.default_model, user_id=app.user_id or "-")]

    return AppRuntime(
        chat_service=chat_service,
        models=models,
        memory_store=memory_store,
        qdrant_client=qdrant_client,
        tool_names=tool_names,
        log_descriptions=log_descriptions,
    )
