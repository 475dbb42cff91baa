from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class VectorDocument:
    id: str
    content: str
    embedding: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorQueryResult:
    content: str
    distance: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RetrievedChunk:
    content: str
    distance: float
    chunk_index: int | None = None


class VectorStoreContract(ABC):
    @abstractmethod
    async def collection_exists(self, name: str) -> bool:
        pass

    @abstractmethod
    async def create_collection(self, name: str, dimensions: int) -> None:
        pass

    @abstractmethod
    async def delete_collection(self, name: str) -> None:
        pass

    @abstractmethod
    async def add_documents(
        self, collection: str, documents: list[VectorDocument]
    ) -> None:
        pass

    @abstractmethod
    async def query(
        self, collection: str, embedding: list[float], top_k: int
    ) -> list[VectorQueryResult]:
        """Return the nearest documents, closest (smallest distance) first."""
        pass
