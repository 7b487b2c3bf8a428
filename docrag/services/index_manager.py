"""Index manager keeping the vector index in step with relational records."""

import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from docrag.core.config import settings
from docrag.core.exceptions import (
    AlreadyIndexingError,
    DatabaseError,
    EmbeddingError,
    EmptyContentError,
    InconsistentStateError,
    NotFoundError,
    ProviderUnavailableError,
)
from docrag.models.document import (
    ChunkCreate,
    ClearIndexResult,
    Document,
    IndexState,
    IndexStatus,
)
from docrag.models.vector import ChunkPayload, VectorPoint
from docrag.monitoring.metrics import (
    chunks_indexed_total,
    index_duration_seconds,
    index_operations_total,
    orphaned_vectors_total,
    vector_rollbacks_total,
)
from docrag.services.chunking import ChunkingService, TextChunk
from docrag.services.database import DatabaseService
from docrag.services.embedding import EmbeddingService
from docrag.services.locks import IndexLockRegistry
from docrag.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)


class IndexManager:
    """Orchestrates chunking, embedding and vector upserts for documents.

    The relational store is the source of truth for which vectors should
    exist: every point id referenced by a Chunk row is present in the vector
    index, and a failed attempt deletes the vectors it wrote before the
    status is marked failed. The vector index is never read to decide what
    to delete.
    """

    def __init__(
        self,
        database: DatabaseService,
        vector_db: VectorDBService,
        embedding_service: EmbeddingService,
        chunking_service: ChunkingService,
        locks: Optional[IndexLockRegistry] = None,
        stale_after_seconds: Optional[int] = None,
        upsert_batch_size: Optional[int] = None,
    ) -> None:
        """
        Initialize index manager.

        Args:
            database: Relational store.
            vector_db: Vector index.
            embedding_service: Embedding provider.
            chunking_service: Document chunker.
            locks: Per-document lock registry.
            stale_after_seconds: Age after which a processing status is abandoned.
            upsert_batch_size: Points per vector upsert call.
        """
        self.database = database
        self.vector_db = vector_db
        self.embedding_service = embedding_service
        self.chunking_service = chunking_service
        self.locks = locks or IndexLockRegistry()
        self.stale_after_seconds = (
            settings.index_stale_after_seconds
            if stale_after_seconds is None
            else stale_after_seconds
        )
        self.upsert_batch_size = upsert_batch_size or settings.vector_upsert_batch_size

    async def _get_owned(self, document_id: str, owner_id: str) -> Document:
        document = await self.database.get_document(document_id, owner_id)
        if not document:
            raise NotFoundError(f"Document {document_id} not found")
        return document

    async def _require_status(self, document_id: str) -> IndexStatus:
        status = await self.database.get_index_status(document_id)
        if status is None:
            logger.error(f"Document {document_id} has no index status")
            raise InconsistentStateError(
                f"Document {document_id} has no index status")
        return status

    def _is_active(self, status: IndexStatus) -> bool:
        """Whether a processing status belongs to a live attempt."""
        if status.status != IndexState.PROCESSING:
            return False
        if status.updated_at is None:
            return True
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self.stale_after_seconds)
        return status.updated_at > cutoff

    async def index(self, document_id: str, owner_id: str) -> IndexStatus:
        """
        Index a document, replacing any previous index of it.

        Args:
            document_id: Document to index.
            owner_id: Owner of the document.

        Returns:
            The completed index status.

        Raises:
            NotFoundError: If the document does not belong to owner_id.
            AlreadyIndexingError: If the document is being indexed.
            EmptyContentError: If the document has no content to index.
            ProviderUnavailableError: If an embedding or vector call fails.
            InconsistentStateError: If vectors of the failed attempt could not be removed.
        """
        start_time = time.time()
        try:
            with self.locks.hold(document_id):
                document = await self._get_owned(document_id, owner_id)
                status = await self.database.claim_for_indexing(
                    document_id, self.stale_after_seconds)
                if status is None:
                    await self._require_status(document_id)
                    raise AlreadyIndexingError(
                        f"Document {document_id} is already being indexed")

                logger.info(f"Indexing document {document_id} ({document.title})")
                status = await self._run_attempt(document)
        except AlreadyIndexingError:
            index_operations_total.labels("index", "rejected").inc()
            raise
        except Exception:
            index_operations_total.labels("index", "failure").inc()
            raise

        duration = time.time() - start_time
        index_operations_total.labels("index", "success").inc()
        index_duration_seconds.observe(duration)
        chunks_indexed_total.inc(status.total_chunks)
        logger.info(
            f"Indexed document {document_id}: {status.total_chunks} chunks "
            f"in {duration:.2f}s"
        )
        return status

    async def _run_attempt(self, document: Document) -> IndexStatus:
        upserted: List[str] = []
        try:
            await self._remove_indexed_chunks(document.id)

            pieces = self.chunking_service.chunk_document(document.content)
            if not pieces:
                raise EmptyContentError(
                    f"Document {document.id} has no extractable content")
            await self.database.update_progress(document.id, len(pieces), 0)

            embeddings = await self.embedding_service.embed_batch(
                [piece.text for piece in pieces])
            if len(embeddings) != len(pieces):
                raise EmbeddingError(
                    f"Expected {len(pieces)} embeddings, got {len(embeddings)}")

            points, rows = self._build_points(document, pieces, embeddings)
            for i in range(0, len(points), self.upsert_batch_size):
                batch = points[i:i + self.upsert_batch_size]
                # Recorded before the call: a timed out upsert may still land.
                upserted.extend(point.id for point in batch)
                await self.vector_db.upsert(batch)
                await self.database.update_progress(
                    document.id, len(points), i + len(batch))

            return await self.database.complete_indexing(document.id, rows)
        except Exception as e:
            await self._abort(document.id, upserted, e)
            raise

    def _build_points(
        self, document: Document, pieces: List[TextChunk], embeddings: List[List[float]]
    ) -> tuple[List[VectorPoint], List[ChunkCreate]]:
        points = []
        rows = []
        for idx, (piece, vector) in enumerate(zip(pieces, embeddings)):
            point_id = str(uuid.uuid4())
            payload = ChunkPayload(
                document_id=document.id,
                owner_id=document.owner_id,
                chunk_index=idx,
                title=document.title,
                file_type=document.file_type,
            )
            points.append(VectorPoint(id=point_id, vector=vector, payload=payload))
            rows.append(
                ChunkCreate(
                    chunk_index=idx,
                    chunk_text=piece.text,
                    chunk_metadata={
                        "start": piece.start,
                        "end": piece.end,
                        "total_chunks": len(pieces),
                        "title": document.title,
                        "file_type": document.file_type,
                        "content_origin": document.content_origin.value,
                        "url": document.url,
                    },
                    point_id=point_id,
                )
            )
        return points, rows

    async def _abort(self, document_id: str, upserted: List[str], error: Exception) -> None:
        """Roll back the vectors of a failed attempt and mark it failed."""
        rollback_error: Optional[Exception] = None
        if upserted:
            try:
                await self.vector_db.delete(upserted)
                vector_rollbacks_total.inc()
                logger.warning(
                    f"Rolled back {len(upserted)} vectors of document {document_id}")
            except ProviderUnavailableError as e:
                rollback_error = e
                orphaned_vectors_total.inc(len(upserted))
                logger.error(
                    f"Failed to roll back vectors of document {document_id}: {str(e)}. "
                    f"Orphaned point ids: {upserted}"
                )

        message = str(error) or error.__class__.__name__
        try:
            await self.database.mark_failed(document_id, message)
        except DatabaseError as e:
            logger.error(
                f"Failed to mark document {document_id} as failed: {str(e)}")

        logger.warning(f"Indexing document {document_id} failed: {message}")
        if rollback_error is not None:
            raise InconsistentStateError(
                f"Vectors of document {document_id} could not be rolled back: "
                f"{str(rollback_error)}"
            ) from error

    async def _remove_indexed_chunks(self, document_id: str) -> int:
        """Delete a document's vectors, then the chunk rows that reference them."""
        point_ids = await self.database.get_point_ids(document_id)
        if point_ids:
            await self.vector_db.delete(point_ids)
            try:
                await self.database.delete_chunks(document_id)
            except DatabaseError as e:
                raise self._dangling_rows(document_id, len(point_ids), e) from e
            logger.info(
                f"Removed {len(point_ids)} indexed chunks of document {document_id}")
        return len(point_ids)

    def _dangling_rows(
        self, document_id: str, count: int, error: DatabaseError
    ) -> InconsistentStateError:
        """Report chunk rows left behind after their vectors were deleted."""
        logger.error(
            f"Deleted {count} vectors of document {document_id} but its chunk rows "
            f"could not be removed: {str(error)}"
        )
        return InconsistentStateError(
            f"Chunk rows of document {document_id} reference deleted vectors: {str(error)}"
        )

    async def deindex(self, document_id: str, owner_id: str) -> IndexStatus:
        """
        Remove a document from the index and reset its status to pending.

        The document itself is left untouched.

        Raises:
            NotFoundError: If the document does not belong to owner_id.
            AlreadyIndexingError: If the document is being indexed.
            InconsistentStateError: If the chunk rows did not match the recorded chunk
                count, or could not be removed after their vectors were deleted.
        """
        try:
            with self.locks.hold(document_id):
                await self._get_owned(document_id, owner_id)
                status = await self._deindex_locked(document_id)
        except AlreadyIndexingError:
            index_operations_total.labels("deindex", "rejected").inc()
            raise
        except Exception:
            index_operations_total.labels("deindex", "failure").inc()
            raise

        index_operations_total.labels("deindex", "success").inc()
        return status

    async def _deindex_locked(self, document_id: str) -> IndexStatus:
        previous = await self._require_status(document_id)
        if self._is_active(previous):
            raise AlreadyIndexingError(
                f"Document {document_id} is already being indexed")

        point_ids = await self.database.get_point_ids(document_id)
        if point_ids:
            await self.vector_db.delete(point_ids)
        try:
            status = await self.database.reset_index(document_id)
        except DatabaseError as e:
            if not point_ids:
                raise
            raise self._dangling_rows(document_id, len(point_ids), e) from e
        logger.info(
            f"Deindexed document {document_id}: removed {len(point_ids)} chunks")

        if previous.status == IndexState.COMPLETED and len(point_ids) != previous.total_chunks:
            logger.error(
                f"Document {document_id} recorded {previous.total_chunks} chunks "
                f"but {len(point_ids)} chunk rows were found"
            )
            raise InconsistentStateError(
                f"Document {document_id} had {len(point_ids)} chunk rows, "
                f"expected {previous.total_chunks}"
            )
        return status

    async def clear_all(self, owner_id: str) -> ClearIndexResult:
        """
        Deindex every indexed document of an owner and purge their chat sessions.

        Failed documents are reset as well, since a failed re-index may leave
        the chunks of an earlier attempt behind.
        """
        result = ClearIndexResult()
        documents = await self.database.list_documents(owner_id)
        for item in documents:
            if item.index_status.status not in (IndexState.COMPLETED, IndexState.FAILED):
                continue
            await self.deindex(item.document.id, owner_id)
            result.documents_deindexed += 1

        # Cached answers would cite vectors that no longer exist.
        result.sessions_deleted = await self.database.delete_sessions_for_owner(owner_id)
        logger.info(
            f"Cleared index of owner {owner_id}: {result.documents_deindexed} documents, "
            f"{result.sessions_deleted} chat sessions"
        )
        return result

    async def delete(self, document_id: str, owner_id: str) -> None:
        """
        Delete a document together with its chunks, vectors and backing file.

        Raises:
            NotFoundError: If the document does not belong to owner_id.
            AlreadyIndexingError: If the document is being indexed.
            InconsistentStateError: If the rows could not be removed after the
                vectors were deleted.
        """
        try:
            with self.locks.hold(document_id):
                document = await self._get_owned(document_id, owner_id)
                status = await self.database.get_index_status(document_id)
                if status is not None and self._is_active(status):
                    raise AlreadyIndexingError(
                        f"Document {document_id} is already being indexed")

                point_ids = await self.database.get_point_ids(document_id)
                if point_ids:
                    await self.vector_db.delete(point_ids)
                self._remove_file(document)

                try:
                    deleted = await self.database.delete_document(document_id, owner_id)
                except DatabaseError as e:
                    if not point_ids:
                        raise
                    raise self._dangling_rows(document_id, len(point_ids), e) from e
                if not deleted:
                    raise NotFoundError(f"Document {document_id} not found")
        except AlreadyIndexingError:
            index_operations_total.labels("delete", "rejected").inc()
            raise
        except Exception:
            index_operations_total.labels("delete", "failure").inc()
            raise

        index_operations_total.labels("delete", "success").inc()
        logger.info(
            f"Deleted document {document_id} and {len(point_ids)} indexed chunks")

    def _remove_file(self, document: Document) -> None:
        if not document.file_path:
            return
        try:
            Path(document.file_path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(
                f"Failed to remove file {document.file_path} of document {document.id}: {str(e)}"
            )
