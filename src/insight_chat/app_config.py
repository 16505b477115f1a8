from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from insight_chat.models import DEFAULT_MODEL_ID


@dataclass
class RuntimeEnv:
    api_keys: dict[str, str]
    postgres_url: str | None
    qdrant_url: str | None
    qdrant_api_key: str | None
    qdrant_collection: str | None
    embedding_provider: str | None
    embedding_model: str | None


@dataclass
class AppConfig:
    default_model: str
    models: list[dict]
    max_tokens: int
    temperature: float
    max_tool_result_chars: int
    chat_db_path: str
    user_id: str | None
    qdrant_url: str
    qdrant_collection: str
    embedding_provider: str
    embedding_model: str | None
    ollama_base_url: str | None
    strict_sql_validation: bool
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        default_model=str(config.get("DefaultModel", DEFAULT_MODEL_ID)),
        models=list(config.get("Models", [])),
        max_tokens=int(config.get("MaxTokens", 4096)),
        temperature=float(config.get("Temperature", 0.7)),
        max_tool_result_chars=int(config.get("MaxToolResultChars", 40_000)),
        chat_db_path=str(config.get("ChatDbPath", ".insight_chat/chats.db")),
        user_id=str(config.get("UserId", "")).strip() or None,
        qdrant_url=str(config.get("QdrantUrl", "http://127.0.0.1:6333")),
        qdrant_collection=str(config.get("QdrantCollection", "documents")),
        embedding_provider=str(config.get("EmbeddingProvider", "openai")).strip().lower(),
        embedding_model=str(config.get("EmbeddingModel", "")).strip() or None,
        ollama_base_url=str(config.get("OllamaBaseUrl", "")).strip() or None,
        strict_sql_validation=_to_bool(config.get("StrictSqlValidation", False), default=False),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        api_keys={
            "openai": os.environ.get("OPENAI_API_KEY", ""),
            "anthropic": os.environ.get("ANTHROPIC_API_KEY", ""),
            "mistral": os.environ.get("MISTRAL_API_KEY", ""),
        },
        postgres_url=os.environ.get("POSTGRES_URL") or None,
        qdrant_url=os.environ.get("QDRANT_URL") or None,
        qdrant_api_key=os.environ.get("QDRANT_API_KEY") or None,
        qdrant_collection=os.environ.get("QDRANT_COLLECTION") or None,
        embedding_provider=os.environ.get("TEXT_EMBEDDING_MODEL_PROVIDER") or None,
        embedding_model=os.environ.get("TEXT_EMBEDDING_MODEL") or None,
    )
