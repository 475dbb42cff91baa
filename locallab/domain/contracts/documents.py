from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class Document:
    id: int
    filename: str
    content: str
    chunk_count: int | None = None


class DocumentRepositoryContract(ABC):
    @abstractmethod
    def add(self, filename: str, content: str) -> Document:
        pass

    @abstractmethod
    def get(self, document_id: int) -> Document | None:
        pass

    @abstractmethod
    def update_chunk_count(self, document_id: int, chunk_count: int) -> None:
        pass
