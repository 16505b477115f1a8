import asyncio
import os
import shutil
import unittest
from pathlib import Path
from unittest.mock import patch
from uuid import uuid4

from insight_chat.app_config import parse_app_config, resolve_runtime_env
from insight_chat.bootstrap import bootstrap_runtime
from insight_chat.errors import NotFoundError
from insight_chat.models import DEFAULT_MODEL_ID, ModelRegistry, parse_models

PROJECT_ROOT = Path(__file__).resolve().parents[1]


class ParseAppConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        app = parse_app_config({})
        self.assertEqual(DEFAULT_MODEL_ID, app.default_model)
        self.assertEqual(4096, app.max_tokens)
        self.assertEqual(".insight_chat/chats.db", app.chat_db_path)
        self.assertEqual("openai", app.embedding_provider)
        self.assertFalse(app.strict_sql_validation)
        self.assertIsNone(app.user_id)
        self.assertIsNone(app.log_consumers)

    def test_values_from_config(self) -> None:
        app = parse_app_config({
            "DefaultModel": "claude-sonnet",
            "MaxTokens": "2048",
            "Temperature": 0.2,
            "UserId": " alice ",
            "EmbeddingProvider": "Mistral",
            "StrictSqlValidation": "yes",
            "LogLevel": "DEBUG",
        })
        self.assertEqual("claude-sonnet", app.default_model)
        self.assertEqual(2048, app.max_tokens)
        self.assertEqual(0.2, app.temperature)
        self.assertEqual("alice", app.user_id)
        self.assertEqual("mistral", app.embedding_provider)
        self.assertTrue(app.strict_sql_validation)
        self.assertEqual("DEBUG", app.log_level)


class ResolveRuntimeEnvTests(unittest.TestCase):
    def test_reads_environment(self) -> None:
        env_vars = {
            "OPENAI_API_KEY": "sk-test",
            "POSTGRES_URL": "postgresql://localhost/unicorns",
            "TEXT_EMBEDDING_MODEL_PROVIDER": "openai",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            env = resolve_runtime_env()
        self.assertEqual("sk-test", env.api_keys["openai"])
        self.assertEqual("", env.api_keys["anthropic"])
        self.assertEqual("postgresql://localhost/unicorns", env.postgres_url)
        self.assertIsNone(env.qdrant_url)
        self.assertEqual("openai", env.embedding_provider)


class ModelRegistryTests(unittest.TestCase):
    def test_unknown_model_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            ModelRegistry().get("gpt-99")

    def test_config_models_extend_and_override_defaults(self) -> None:
        models = ModelRegistry(parse_models([
            {"Id": "gpt-4o-mini", "ApiIdentifier": "gpt-4o-mini-2024-07-18", "Provider": "OpenAI"},
            {"Id": "qwen", "Provider": "ollama"},
        ]))
        self.assertEqual("gpt-4o-mini-2024-07-18", models.get("gpt-4o-mini").api_identifier)
        self.assertEqual("ollama", models.get("qwen").provider)
        self.assertEqual("qwen", models.get("qwen").api_identifier)
        self.assertIn("claude-sonnet", models)


class BootstrapRuntimeTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"bootstrap-{uuid4().hex}"

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def test_optional_tools_are_disabled_without_backing_services(self) -> None:
        app = parse_app_config({
            "ChatDbPath": str(self._tmp_dir / "chats.db"),
            "UserId": "alice",
            "LogConsumers": [],
        })
        with patch.dict(os.environ, {"ANTHROPIC_API_KEY": "key"}, clear=True):
            env = resolve_runtime_env()

        runtime = bootstrap_runtime(app, env)
        try:
            self.assertEqual(["get_weather", "create_document", "update_document"], runtime.tool_names)
            self.assertIsNone(runtime.qdrant_client)
            self.assertEqual([], runtime.log_descriptions)
            self.assertTrue((self._tmp_dir / "chats.db").exists())
        finally:
            asyncio.run(runtime.close())


if __name__ == "__main__":
    unittest.main()
