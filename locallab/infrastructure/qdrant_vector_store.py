import logging
from pathlib import Path

from qdrant_client import AsyncQdrantClient, models

from ..domain.contracts.vector_store import (
    VectorDocument,
    VectorQueryResult,
    VectorStoreContract,
)
from .settings import Settings

logger = logging.getLogger(__name__)

CONTENT_KEY = "content"
IN_MEMORY = ":memory:"


def create_qdrant_client(settings: Settings) -> AsyncQdrantClient:
    if settings.qdrant_url:
        return AsyncQdrantClient(url=settings.qdrant_url)

    location = settings.resolved_qdrant_location
    if location == IN_MEMORY:
        return AsyncQdrantClient(location=IN_MEMORY)

    storage_path = Path(location)
    storage_path.mkdir(parents=True, exist_ok=True)
    return AsyncQdrantClient(path=str(storage_path))


class QdrantVectorStore(VectorStoreContract):
    """Collections use cosine similarity; distances are reported as 1 - score."""

    def __init__(self, client: AsyncQdrantClient) -> None:
        self.client = client

    async def collection_exists(self, name: str) -> bool:
        return await self.client.collection_exists(collection_name=name)

    async def create_collection(self, name: str, dimensions: int) -> None:
        await self.client.create_collection(
            collection_name=name,
            vectors_config=models.VectorParams(
                size=dimensions,
                distance=models.Distance.COSINE,
            ),
        )
        logger.info("Created collection %s (%d dimensions)", name, dimensions)

    async def delete_collection(self, name: str) -> None:
        await self.client.delete_collection(collection_name=name)

    async def add_documents(
        self, collection: str, documents: list[VectorDocument]
    ) -> None:
        points = [
            models.PointStruct(
                id=document.id,
                vector=document.embedding,
                payload={CONTENT_KEY: document.content, **document.metadata},
            )
            for document in documents
        ]
        await self.client.upsert(collection_name=collection, points=points)
        logger.debug("Uploaded %d points to %s", len(points), collection)

    async def query(
        self, collection: str, embedding: list[float], top_k: int
    ) -> list[VectorQueryResult]:
        response = await self.client.query_points(
            collection_name=collection,
            query=embedding,
            limit=top_k,
            with_payload=True,
        )

        results = []
        for point in response.points:
            payload = dict(point.payload or {})
            content = payload.pop(CONTENT_KEY, "")
            results.append(
                VectorQueryResult(
                    content=str(content),
                    distance=1.0 - point.score,
                    metadata=payload,
                )
            )
        return results

    async def close(self) -> None:
        await self.client.close()
