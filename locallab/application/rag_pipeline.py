import logging
import uuid
from typing import Any

from ..domain.chunking import chunk_text
from ..domain.contracts.documents import DocumentRepositoryContract
from ..domain.contracts.embedding import (
    EmbeddingGatewayContract,
    EmbeddingModelRegistryContract,
)
from ..domain.contracts.vector_store import (
    RetrievedChunk,
    VectorDocument,
    VectorStoreContract,
)
from ..domain.errors import NotFoundError
from .prompts import get_context_block

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5


def collection_name(document_id: int, embedding_model: str) -> str:
    return f"doc-{document_id}-{embedding_model.replace(':', '-')}"


def build_context(chunks: list[RetrievedChunk] | None) -> str:
    if not chunks:
        return ""

    return get_context_block(chunk.content for chunk in chunks)


def _chunk_index(metadata: dict[str, Any] | None) -> int | None:
    if not metadata:
        return None
    value = metadata.get("chunkIndex")
    # bool is an int subclass but never a valid index
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


class RagPipeline:
    def __init__(
        self,
        document_repository: DocumentRepositoryContract,
        embedding_registry: EmbeddingModelRegistryContract,
        embedding_gateway: EmbeddingGatewayContract,
        vector_store: VectorStoreContract,
    ) -> None:
        self._document_repository = document_repository
        self._embedding_registry = embedding_registry
        self._embedding_gateway = embedding_gateway
        self._vector_store = vector_store

    async def embed_and_store(
        self,
        document_id: int,
        embedding_model: str,
        chunk_size: int,
        overlap: int,
    ) -> int:
        """Chunk a document, embed every chunk and append it to its collection.

        Running this twice for the same document and model appends a second
        copy of every chunk; call ``delete_embeddings`` first to re-ingest.
        Returns the number of chunks stored.
        """
        logger.info(
            "Embedding document %s with %s (chunk_size=%d, overlap=%d)",
            document_id,
            embedding_model,
            chunk_size,
            overlap,
        )

        document = self._document_repository.get(document_id)
        if document is None:
            raise NotFoundError(f"Document not found: {document_id}")

        chunks = chunk_text(document.content, chunk_size, overlap)
        name = collection_name(document_id, embedding_model)

        await self._ensure_collection(name, embedding_model)

        vector_documents = []
        for index, chunk in enumerate(chunks):
            embedding = await self._embedding_gateway.embed(embedding_model, chunk)
            vector_documents.append(
                VectorDocument(
                    id=str(uuid.uuid4()),
                    content=chunk,
                    embedding=embedding,
                    metadata={
                        "documentId": document_id,
                        "chunkIndex": index,
                        "embeddingModel": embedding_model,
                    },
                )
            )

        if vector_documents:
            await self._vector_store.add_documents(name, vector_documents)

        self._document_repository.update_chunk_count(document_id, len(chunks))

        logger.info(
            "Stored %d chunks for document %s in collection %s",
            len(chunks),
            document_id,
            name,
        )
        return len(chunks)

    async def delete_embeddings(self, document_id: int, embedding_model: str) -> bool:
        name = collection_name(document_id, embedding_model)
        if not await self._vector_store.collection_exists(name):
            return False

        await self._vector_store.delete_collection(name)
        logger.info("Deleted collection %s", name)
        return True

    async def query(
        self,
        collection: str,
        query_text: str,
        embedding_model: str,
        top_k: int = DEFAULT_TOP_K,
    ) -> list[RetrievedChunk]:
        logger.debug(
            "Querying collection %s with %s (top_k=%d)",
            collection,
            embedding_model,
            top_k,
        )

        query_embedding = await self._embedding_gateway.embed(
            embedding_model, query_text
        )
        results = await self._vector_store.query(collection, query_embedding, top_k)

        chunks = [
            RetrievedChunk(
                content=result.content,
                distance=result.distance,
                chunk_index=_chunk_index(result.metadata),
            )
            for result in results
        ]

        logger.debug("Retrieved %d chunks from %s", len(chunks), collection)
        return chunks

    async def _ensure_collection(self, name: str, embedding_model: str) -> None:
        model = self._embedding_registry.find_by_model_name(embedding_model)
        if model is None:
            logger.warning("Embedding model not registered: %s", embedding_model)
            raise NotFoundError(f"Embedding model not found: {embedding_model}")

        if not await self._vector_store.collection_exists(name):
            logger.debug(
                "Creating collection %s with %d dimensions", name, model.dimensions
            )
            await self._vector_store.create_collection(name, model.dimensions)
