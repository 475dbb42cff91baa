from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class EmbeddingModel:
    name: str
    model_name: str
    dimensions: int


class EmbeddingGatewayContract(ABC):
    @abstractmethod
    async def embed(self, model: str, text: str) -> list[float]:
        pass


class EmbeddingModelRegistryContract(ABC):
    @abstractmethod
    def find_by_model_name(self, model_name: str) -> EmbeddingModel | None:
        pass

    @abstractmethod
    def list_models(self) -> list[EmbeddingModel]:
        pass
