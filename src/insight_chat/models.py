from __future__ import annotations

from dataclasses import dataclass

from insight_chat.errors import NotFoundError


@dataclass(frozen=True)
class ModelSpec:
    id: str
    label: str
    api_identifier: str
    description: str
    provider: str


DEFAULT_MODELS: tuple[ModelSpec, ...] = (
    ModelSpec(
        id="gpt-4o-mini",
        label="GPT 4o mini",
        api_identifier="gpt-4o-mini",
        description="Small model for fast, lightweight tasks",
        provider="openai",
    ),
    ModelSpec(
        id="gpt-4o",
        label="GPT 4o",
        api_identifier="gpt-4o",
        description="For complex, multi-step tasks",
        provider="openai",
    ),
    ModelSpec(
        id="mistral-large",
        label="Mistral Large",
        api_identifier="mistral-large-latest",
        description="GPT 4o alternative",
        provider="mistral",
    ),
    ModelSpec(
        id="claude-sonnet",
        label="Claude Sonnet",
        api_identifier="claude-sonnet-4-5-20250929",
        description="Strong tool use and long answers",
        provider="anthropic",
    ),
    ModelSpec(
        id="llama3.1",
        label="Llama 3.1 (local)",
        api_identifier="llama3.1",
        description="Runs on a local Ollama server",
        provider="ollama",
    ),
)

DEFAULT_MODEL_ID = "gpt-4o-mini"


class ModelRegistry:
    def __init__(self, models: list[ModelSpec] | tuple[ModelSpec, ...] = DEFAULT_MODELS):
        self._models = {m.id: m for m in models}

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._models

    def all(self) -> list[ModelSpec]:
        return list(self._models.values())

    def get(self, model_id: str) -> ModelSpec:
        model = self._models.get(model_id)
        if model is None:
            raise NotFoundError(f"Model not found: {model_id}")
        return model


def parse_models(entries: list[dict] | None) -> list[ModelSpec]:
    """Merge config-declared models over the defaults (same id replaces)."""
    merged = {m.id: m for m in DEFAULT_MODELS}
    for entry in entries or []:
        model_id = str(entry["Id"])
        merged[model_id] = ModelSpec(
            id=model_id,
            label=str(entry.get("Label", model_id)),
            api_identifier=str(entry.get("ApiIdentifier", model_id)),
            description=str(entry.get("Description", "")),
            provider=str(entry.get("Provider", "openai")).strip().lower(),
        )
    return list(merged.values())
