"""Qdrant vector database service."""

import logging
from typing import List, Optional

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchAny,
    NearestQuery,
    PayloadSchemaType,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from docrag.core.config import settings
from docrag.core.exceptions import VectorDBError
from docrag.models.vector import VectorMatch, VectorPoint
from docrag.services.timeouts import with_timeout

logger = logging.getLogger(__name__)


class VectorDBService:
    """Service for interacting with Qdrant vector database."""

    def __init__(
        self,
        client: Optional[AsyncQdrantClient] = None,
        collection_name: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """Initialize the vector database service."""
        self.client = client
        self.collection_name = collection_name or settings.qdrant_collection_name
        self.dimensions = dimensions or settings.embedding_dimensions
        self.timeout = timeout or settings.vector_timeout_seconds

    async def connect(self) -> None:
        """Connect to Qdrant."""
        try:
            if self.client is None:
                self.client = AsyncQdrantClient(
                    url=settings.qdrant_url,
                    api_key=settings.qdrant_api_key,
                    timeout=int(self.timeout),
                )
            await self._ensure_collection()
        except Exception as e:
            raise VectorDBError(
                f"Failed to connect to Qdrant: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Qdrant."""
        if self.client:
            await self.client.close()
            self.client = None

    async def _ensure_collection(self) -> None:
        """Ensure the collection and its document_id payload index exist."""
        if not self.client:
            raise VectorDBError("Client not connected")

        collections = await self.client.get_collections()
        collection_names = [col.name for col in collections.collections]

        if self.collection_name not in collection_names:
            await self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=self.dimensions,
                    distance=Distance.COSINE,
                ),
            )
            await self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name="document_id",
                field_schema=PayloadSchemaType.KEYWORD,
            )
            logger.info(f"Created Qdrant collection {self.collection_name}")

    async def upsert(self, points: List[VectorPoint]) -> None:
        """
        Upsert chunk vectors.

        Args:
            points: Vectors with their point ids and payloads.

        Raises:
            VectorDBError: If the upsert fails or times out.
        """
        if not self.client:
            raise VectorDBError("Client not connected")
        if not points:
            return

        structs = [
            PointStruct(
                id=point.id,
                vector=point.vector,
                payload=point.payload.model_dump(),
            )
            for point in points
        ]
        try:
            await with_timeout(
                self.client.upsert(
                    collection_name=self.collection_name, points=structs, wait=True),
                self.timeout,
                VectorDBError,
                "Vector upsert",
            )
        except VectorDBError:
            raise
        except Exception as e:
            raise VectorDBError(f"Failed to upsert points: {str(e)}") from e

    async def delete(self, point_ids: List[str]) -> None:
        """
        Delete points by id.

        Ids that are not present in the collection are ignored.

        Args:
            point_ids: Point ids to delete.
        """
        if not self.client:
            raise VectorDBError("Client not connected")
        if not point_ids:
            return

        try:
            await with_timeout(
                self.client.delete(
                    collection_name=self.collection_name,
                    points_selector=PointIdsList(points=list(point_ids)),
                    wait=True,
                ),
                self.timeout,
                VectorDBError,
                "Vector delete",
            )
        except VectorDBError:
            raise
        except Exception as e:
            raise VectorDBError(f"Failed to delete points: {str(e)}") from e

    async def search(
        self, query_embedding: List[float], top_k: int, document_ids: List[str]
    ) -> List[VectorMatch]:
        """
        Search for similar chunks.

        Args:
            query_embedding: Query embedding vector.
            top_k: Number of results to return.
            document_ids: Only chunks of these documents are considered.

        Returns:
            List of matching points ordered by descending score.
        """
        if not self.client:
            raise VectorDBError("Client not connected")
        if not document_ids:
            return []

        query_filter = Filter(
            must=[FieldCondition(key="document_id", match=MatchAny(any=list(document_ids)))]
        )
        try:
            results = await with_timeout(
                self.client.query_points(
                    collection_name=self.collection_name,
                    query=NearestQuery(nearest=query_embedding),
                    limit=top_k,
                    query_filter=query_filter,
                    with_payload=True,
                ),
                self.timeout,
                VectorDBError,
                "Vector search",
            )
        except VectorDBError:
            raise
        except Exception as e:
            raise VectorDBError(f"Failed to search points: {str(e)}") from e

        return [
            VectorMatch(id=str(point.id), score=point.score, payload=point.payload or {})
            for point in results.points
        ]
