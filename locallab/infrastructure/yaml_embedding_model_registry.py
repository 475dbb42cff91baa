from pathlib import Path

import yaml

from ..domain.contracts.embedding import EmbeddingModel, EmbeddingModelRegistryContract
from ..domain.errors import ConfigurationError


class YamlEmbeddingModelRegistry(EmbeddingModelRegistryContract):
    """Registered embedding models read from a YAML list of
    ``{name, model_name, dimensions}`` entries."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def list_models(self) -> list[EmbeddingModel]:
        if not self._path.exists():
            return []

        with open(self._path) as f:
            data = yaml.safe_load(f)

        if data is None:
            return []
        if not isinstance(data, list):
            raise ConfigurationError(
                f"{self._path.name} must contain a list of embedding models"
            )

        models = []
        for i, item in enumerate(data):
            if not isinstance(item, dict):
                raise ConfigurationError(f"Embedding model {i} must be a dictionary")

            model_name = item.get("model_name")
            dimensions = item.get("dimensions")
            if not model_name:
                raise ConfigurationError(f"Embedding model {i} missing 'model_name'")
            if not isinstance(dimensions, int) or dimensions <= 0:
                raise ConfigurationError(
                    f"Embedding model '{model_name}' needs positive integer 'dimensions'"
                )

            models.append(
                EmbeddingModel(
                    name=item.get("name", model_name),
                    model_name=model_name,
                    dimensions=dimensions,
                )
            )

        return models

    def find_by_model_name(self, model_name: str) -> EmbeddingModel | None:
        for model in self.list_models():
            if model.model_name == model_name:
                return model
        return None
