from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import ConfigurationError

MAX_ITERATIONS = 100


class ContextMode(str, Enum):
    NONE = "NONE"
    RAG = "RAG"


def _pick(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


@dataclass
class Hyperparameters:
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    context_window: int | None = None
    max_tokens: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Hyperparameters":
        return cls(
            temperature=_pick(data, "temperature"),
            top_p=_pick(data, "top_p", "topP"),
            top_k=_pick(data, "top_k", "topK"),
            context_window=_pick(data, "context_window", "contextWindow"),
            max_tokens=_pick(data, "max_tokens", "maxTokens"),
        )

    def to_dict(self) -> dict[str, Any]:
        data = {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "context_window": self.context_window,
            "max_tokens": self.max_tokens,
        }
        return {k: v for k, v in data.items() if v is not None}

    def validate(self) -> None:
        checks: list[tuple[str, float | int | None, float, float | None]] = [
            ("temperature", self.temperature, 0.0, 2.0),
            ("top_p", self.top_p, 0.0, 1.0),
            ("top_k", self.top_k, 1, 100),
            ("context_window", self.context_window, 512, 128000),
            ("max_tokens", self.max_tokens, 1, None),
        ]
        for name, value, lower, upper in checks:
            if value is None:
                continue
            if value < lower or (upper is not None and value > upper):
                bounds = f">= {lower}" if upper is None else f"between {lower} and {upper}"
                raise ConfigurationError(f"{name} must be {bounds}, got {value}")


@dataclass
class ExperimentConfig:
    models: list[str]
    embedding_models: list[str] | None = None
    iterations: int = 1
    context_mode: ContextMode = ContextMode.NONE
    document_id: int | None = None
    hyperparameters: Hyperparameters | None = None
    variable_values: dict[str, str] = field(default_factory=dict)
    system_prompt_id: int | None = None

    @property
    def uses_rag(self) -> bool:
        return self.context_mode is ContextMode.RAG

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExperimentConfig":
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Experiment config must be a mapping, got {type(data).__name__}"
            )

        models = _pick(data, "models") or []
        if not isinstance(models, list):
            raise ConfigurationError("'models' must be a list")

        embedding_models = _pick(data, "embedding_models", "embeddingModels")
        if embedding_models is not None and not isinstance(embedding_models, list):
            raise ConfigurationError("'embedding_models' must be a list")

        raw_mode = _pick(data, "context_mode", "contextMode") or ContextMode.NONE.value
        try:
            context_mode = ContextMode(str(raw_mode).upper())
        except ValueError:
            raise ConfigurationError(
                f"Invalid context mode '{raw_mode}'. Must be 'NONE' or 'RAG'"
            )

        iterations = _pick(data, "iterations")
        hyperparameters = _pick(data, "hyperparameters")
        variable_values = _pick(data, "variable_values", "variableValues") or {}
        if not isinstance(variable_values, dict):
            raise ConfigurationError("'variable_values' must be a mapping")

        document_id = _pick(data, "document_id", "documentId")
        system_prompt_id = _pick(data, "system_prompt_id", "systemPromptId")

        return cls(
            models=[str(m) for m in models],
            embedding_models=(
                [str(m) for m in embedding_models]
                if embedding_models is not None
                else None
            ),
            iterations=int(iterations) if iterations is not None else 1,
            context_mode=context_mode,
            document_id=int(document_id) if document_id is not None else None,
            hyperparameters=(
                Hyperparameters.from_dict(hyperparameters) if hyperparameters else None
            ),
            variable_values={str(k): str(v) for k, v in variable_values.items()},
            system_prompt_id=(
                int(system_prompt_id) if system_prompt_id is not None else None
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "models": list(self.models),
            "iterations": self.iterations,
            "context_mode": self.context_mode.value,
        }
        if self.embedding_models is not None:
            data["embedding_models"] = list(self.embedding_models)
        if self.document_id is not None:
            data["document_id"] = self.document_id
        if self.hyperparameters is not None:
            data["hyperparameters"] = self.hyperparameters.to_dict()
        if self.variable_values:
            data["variable_values"] = dict(self.variable_values)
        if self.system_prompt_id is not None:
            data["system_prompt_id"] = self.system_prompt_id
        return data

    def validate(self) -> None:
        if not self.models:
            raise ConfigurationError("At least one model must be selected")

        if self.iterations < 1:
            raise ConfigurationError("Iterations must be at least 1")
        if self.iterations > MAX_ITERATIONS:
            raise ConfigurationError(
                f"Iterations must not exceed {MAX_ITERATIONS}"
            )

        if self.uses_rag:
            if not self.embedding_models:
                raise ConfigurationError(
                    "Embedding models must be specified for RAG context mode"
                )
            if self.document_id is None:
                raise ConfigurationError(
                    "Document ID must be specified for RAG context mode"
                )

        if self.hyperparameters is not None:
            self.hyperparameters.validate()
