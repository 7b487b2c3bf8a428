"""In-memory stand-ins for the relational store and the external providers."""

import asyncio
import math
import re
import uuid
import zlib
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from docrag.core.exceptions import (
    DatabaseError,
    EmbeddingUnavailableError,
    LLMError,
    VectorDBError,
)
from docrag.models.chat import ChatMessage, ChatSession, MessageRole, SourceAttribution
from docrag.models.document import (
    Chunk,
    ChunkCreate,
    Document,
    DocumentCreate,
    DocumentWithStatus,
    IndexState,
    IndexStatus,
)
from docrag.models.vector import VectorMatch, VectorPoint


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FakeDatabase:
    """Relational store kept in dictionaries."""

    def __init__(self) -> None:
        self.pool = None
        self.documents: Dict[str, Document] = {}
        self.statuses: Dict[str, IndexStatus] = {}
        self.chunks: Dict[str, List[Chunk]] = {}
        self.sessions: Dict[str, ChatSession] = {}
        self.messages: Dict[str, List[ChatMessage]] = {}
        self._next_chunk_id = 1
        self._next_message_id = 1
        self.fail_complete_indexing = False
        self.fail_assistant_message = False
        self.fail_row_delete = False

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def create_document(self, owner_id: str, data: DocumentCreate) -> Document:
        file_size = data.file_size
        if file_size is None:
            file_size = len(data.content.encode("utf-8"))
        document = Document(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            title=data.title,
            content=data.content,
            content_origin=data.content_origin,
            file_type=data.file_type,
            file_size=file_size,
            file_path=data.file_path,
            url=data.url,
            metadata=data.metadata,
            created_at=_now(),
        )
        self.documents[document.id] = document
        self.statuses[document.id] = IndexStatus(document_id=document.id, updated_at=_now())
        return document

    async def get_document(
        self, document_id: str, owner_id: Optional[str] = None
    ) -> Optional[Document]:
        document = self.documents.get(document_id)
        if document is None or (owner_id is not None and document.owner_id != owner_id):
            return None
        return document

    async def list_documents(
        self, owner_id: str, status: Optional[IndexState] = None
    ) -> List[DocumentWithStatus]:
        items = [
            DocumentWithStatus(document=doc, index_status=self.statuses[doc.id])
            for doc in self.documents.values()
            if doc.owner_id == owner_id
        ]
        if status is not None:
            items = [item for item in items if item.index_status.status == status]
        return items

    async def get_indexed_document_ids(self, owner_id: str) -> List[str]:
        return [
            item.document.id
            for item in await self.list_documents(owner_id, IndexState.COMPLETED)
        ]

    async def get_documents_by_ids(self, document_ids: List[str]) -> Dict[str, Document]:
        return {
            doc_id: self.documents[doc_id]
            for doc_id in document_ids
            if doc_id in self.documents
        }

    async def delete_document(self, document_id: str, owner_id: str) -> bool:
        if self.fail_row_delete:
            raise DatabaseError("Failed to delete document: connection lost")
        document = await self.get_document(document_id, owner_id)
        if document is None:
            return False
        del self.documents[document_id]
        self.statuses.pop(document_id, None)
        self.chunks.pop(document_id, None)
        return True

    async def get_index_status(self, document_id: str) -> Optional[IndexStatus]:
        return self.statuses.get(document_id)

    async def claim_for_indexing(
        self, document_id: str, stale_after_seconds: int
    ) -> Optional[IndexStatus]:
        status = self.statuses.get(document_id)
        if status is None:
            return None
        cutoff = _now() - timedelta(seconds=stale_after_seconds)
        if status.status == IndexState.PROCESSING and status.updated_at > cutoff:
            return None
        self.statuses[document_id] = IndexStatus(
            document_id=document_id, status=IndexState.PROCESSING, updated_at=_now()
        )
        return self.statuses[document_id]

    async def update_progress(
        self, document_id: str, total_chunks: int, processed_chunks: int
    ) -> None:
        status = self.statuses[document_id]
        self.statuses[document_id] = status.model_copy(
            update={
                "total_chunks": total_chunks,
                "processed_chunks": processed_chunks,
                "updated_at": _now(),
            }
        )

    async def complete_indexing(
        self, document_id: str, chunks: List[ChunkCreate]
    ) -> IndexStatus:
        if self.fail_complete_indexing:
            raise DatabaseError("Failed to complete indexing: connection lost")
        rows = []
        for chunk in chunks:
            rows.append(
                Chunk(
                    id=self._next_chunk_id,
                    document_id=document_id,
                    chunk_index=chunk.chunk_index,
                    chunk_text=chunk.chunk_text,
                    chunk_metadata=chunk.chunk_metadata,
                    point_id=chunk.point_id,
                )
            )
            self._next_chunk_id += 1
        self.chunks[document_id] = rows
        self.statuses[document_id] = IndexStatus(
            document_id=document_id,
            status=IndexState.COMPLETED,
            indexed_at=_now(),
            total_chunks=len(rows),
            processed_chunks=len(rows),
            updated_at=_now(),
        )
        return self.statuses[document_id]

    async def mark_failed(self, document_id: str, error_message: str) -> IndexStatus:
        status = self.statuses[document_id]
        self.statuses[document_id] = status.model_copy(
            update={
                "status": IndexState.FAILED,
                "error_message": error_message,
                "indexed_at": None,
                "processed_chunks": 0,
                "updated_at": _now(),
            }
        )
        return self.statuses[document_id]

    async def reset_index(self, document_id: str) -> IndexStatus:
        if self.fail_row_delete:
            raise DatabaseError("Failed to reset index status: connection lost")
        self.chunks.pop(document_id, None)
        self.statuses[document_id] = IndexStatus(document_id=document_id, updated_at=_now())
        return self.statuses[document_id]

    async def get_chunks(self, document_id: str) -> List[Chunk]:
        return list(self.chunks.get(document_id, []))

    async def get_point_ids(self, document_id: str) -> List[str]:
        return [chunk.point_id for chunk in self.chunks.get(document_id, [])]

    async def get_chunks_by_point_ids(self, point_ids: List[str]) -> Dict[str, Chunk]:
        wanted = set(point_ids)
        return {
            chunk.point_id: chunk
            for rows in self.chunks.values()
            for chunk in rows
            if chunk.point_id in wanted
        }

    async def delete_chunks(self, document_id: str) -> None:
        if self.fail_row_delete:
            raise DatabaseError("Failed to delete chunks: connection lost")
        self.chunks.pop(document_id, None)

    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        return self.sessions.get(session_id)

    async def ensure_session(self, session_id: str, owner_id: str) -> ChatSession:
        if session_id not in self.sessions:
            self.sessions[session_id] = ChatSession(
                session_id=session_id, owner_id=owner_id, created_at=_now(), updated_at=_now()
            )
            self.messages[session_id] = []
        return self.sessions[session_id]

    async def list_sessions(self, owner_id: str) -> List[ChatSession]:
        return [s for s in self.sessions.values() if s.owner_id == owner_id]

    async def add_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        sources: Optional[List[SourceAttribution]] = None,
    ) -> ChatMessage:
        if role == MessageRole.ASSISTANT and self.fail_assistant_message:
            raise DatabaseError("Failed to store message: connection lost")
        message = ChatMessage(
            id=self._next_message_id,
            session_id=session_id,
            role=role,
            content=content,
            sources=list(sources or []),
            created_at=_now(),
        )
        self._next_message_id += 1
        self.messages.setdefault(session_id, []).append(message)
        return message

    async def get_messages(self, session_id: str) -> List[ChatMessage]:
        return list(self.messages.get(session_id, []))

    async def delete_messages(self, session_id: str) -> int:
        return len(self.messages.pop(session_id, []))

    async def delete_sessions_for_owner(self, owner_id: str) -> int:
        owned = [sid for sid, s in self.sessions.items() if s.owner_id == owner_id]
        for session_id in owned:
            del self.sessions[session_id]
            self.messages.pop(session_id, None)
        return len(owned)

    def all_point_ids(self) -> set:
        return {chunk.point_id for rows in self.chunks.values() for chunk in rows}


class FakeVectorDB:
    """Vector index doing brute-force cosine search."""

    def __init__(self) -> None:
        self.client = None
        self.points: Dict[str, VectorPoint] = {}
        self.upsert_calls = 0
        # Number of upsert calls allowed to succeed before failures start.
        self.fail_upsert_after: Optional[int] = None
        self.fail_delete = False
        self.fail_search = False

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def upsert(self, points: List[VectorPoint]) -> None:
        await asyncio.sleep(0)
        if self.fail_upsert_after is not None and self.upsert_calls >= self.fail_upsert_after:
            raise VectorDBError("Vector upsert timed out after 30.0s")
        self.upsert_calls += 1
        for point in points:
            self.points[point.id] = point

    async def delete(self, point_ids: List[str]) -> None:
        await asyncio.sleep(0)
        if self.fail_delete:
            raise VectorDBError("Failed to delete points: connection refused")
        for point_id in point_ids:
            self.points.pop(point_id, None)

    async def search(
        self, query_embedding: List[float], top_k: int, document_ids: List[str]
    ) -> List[VectorMatch]:
        await asyncio.sleep(0)
        if self.fail_search:
            raise VectorDBError("Failed to search points: connection refused")
        allowed = set(document_ids)
        scored = [
            VectorMatch(
                id=point.id,
                score=_cosine(query_embedding, point.vector),
                payload=point.payload.model_dump(),
            )
            for point in self.points.values()
            if point.payload.document_id in allowed
        ]
        scored.sort(key=lambda match: match.score, reverse=True)
        return scored[:top_k]


def _cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeEmbedding:
    """Bag-of-words hashing embedder."""

    def __init__(self, dimensions: int = 64) -> None:
        self.dimensions = dimensions
        self.batch_calls: List[List[str]] = []
        self.error: Optional[Exception] = None

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    def _vector(self, text: str) -> List[float]:
        vector = [0.0] * self.dimensions
        for word in re.findall(r"[a-z]+", text.lower()):
            vector[zlib.crc32(word.encode()) % self.dimensions] += 1.0
        vector[0] += 0.01
        return vector

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        self.batch_calls.append(list(texts))
        return [self._vector(text) for text in texts]

    async def embed(self, text: str) -> List[float]:
        return (await self.embed_batch([text]))[0]


class FakeLLM:
    """Language model echoing the first context source."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def complete(self, system_prompt: str, user_message: str) -> str:
        await asyncio.sleep(0)
        self.calls.append((system_prompt, user_message))
        if self.error is not None:
            raise self.error
        return f"According to the documents: {user_message}"


def embedding_unavailable() -> EmbeddingUnavailableError:
    return EmbeddingUnavailableError("Embedding provider unavailable: rate limit exceeded")


def llm_unavailable() -> LLMError:
    return LLMError("LLM completion timed out after 60.0s")


OWNER = "user-1"
OTHER_OWNER = "user-2"


def assert_consistent(database: FakeDatabase, vector_db: FakeVectorDB) -> None:
    """Every chunk row points at a stored vector and every vector has a chunk row."""
    assert database.all_point_ids() == set(vector_db.points)
