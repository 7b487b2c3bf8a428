"""Database service for PostgreSQL operations."""

import json
import logging
import uuid
from typing import Dict, List, Optional

import asyncpg

from docrag.core.config import settings
from docrag.core.exceptions import DatabaseError
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

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    owner_id TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    content_origin TEXT NOT NULL CHECK (content_origin IN ('text', 'file', 'url')),
    file_type TEXT NOT NULL,
    file_size BIGINT NOT NULL DEFAULT 0,
    file_path TEXT,
    url TEXT,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_documents_owner_id ON documents (owner_id);

CREATE TABLE IF NOT EXISTS document_index_status (
    document_id UUID PRIMARY KEY REFERENCES documents (id) ON DELETE CASCADE,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
    error_message TEXT,
    indexed_at TIMESTAMPTZ,
    total_chunks INTEGER NOT NULL DEFAULT 0,
    processed_chunks INTEGER NOT NULL DEFAULT 0,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS document_chunks (
    id BIGSERIAL PRIMARY KEY,
    document_id UUID NOT NULL REFERENCES documents (id) ON DELETE CASCADE,
    chunk_index INTEGER NOT NULL,
    chunk_text TEXT NOT NULL,
    chunk_metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    point_id UUID NOT NULL UNIQUE,
    UNIQUE (document_id, chunk_index)
);

CREATE TABLE IF NOT EXISTS chat_sessions (
    session_id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT 'Chat Session',
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_chat_sessions_owner_id ON chat_sessions (owner_id);

CREATE TABLE IF NOT EXISTS chat_messages (
    id BIGSERIAL PRIMARY KEY,
    session_id TEXT NOT NULL REFERENCES chat_sessions (session_id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
    content TEXT NOT NULL,
    sources JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
);
CREATE INDEX IF NOT EXISTS idx_chat_messages_session_id ON chat_messages (session_id);
"""

_DOCUMENT_COLUMNS = """
    d.id, d.owner_id, d.title, d.content, d.content_origin, d.file_type,
    d.file_size, d.file_path, d.url, d.metadata, d.created_at
"""

_STATUS_COLUMNS = """
    s.document_id, s.status, s.error_message, s.indexed_at,
    s.total_chunks, s.processed_chunks, s.updated_at
"""


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
        return True
    except ValueError:
        return False


def _document_from_row(row: asyncpg.Record) -> Document:
    return Document(
        id=str(row["id"]),
        owner_id=row["owner_id"],
        title=row["title"],
        content=row["content"],
        content_origin=row["content_origin"],
        file_type=row["file_type"],
        file_size=row["file_size"],
        file_path=row["file_path"],
        url=row["url"],
        metadata=row["metadata"] or {},
        created_at=row["created_at"],
    )


def _status_from_row(row: asyncpg.Record) -> IndexStatus:
    return IndexStatus(
        document_id=str(row["document_id"]),
        status=row["status"],
        error_message=row["error_message"],
        indexed_at=row["indexed_at"],
        total_chunks=row["total_chunks"],
        processed_chunks=row["processed_chunks"],
        updated_at=row["updated_at"],
    )


def _chunk_from_row(row: asyncpg.Record) -> Chunk:
    return Chunk(
        id=row["id"],
        document_id=str(row["document_id"]),
        chunk_index=row["chunk_index"],
        chunk_text=row["chunk_text"],
        chunk_metadata=row["chunk_metadata"] or {},
        point_id=str(row["point_id"]),
    )


def _message_from_row(row: asyncpg.Record) -> ChatMessage:
    return ChatMessage(
        id=row["id"],
        session_id=row["session_id"],
        role=row["role"],
        content=row["content"],
        sources=[SourceAttribution(**source) for source in row["sources"] or []],
        created_at=row["created_at"],
    )


def _session_from_row(row: asyncpg.Record) -> ChatSession:
    return ChatSession(
        session_id=row["session_id"],
        owner_id=row["owner_id"],
        title=row["title"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec(
        "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
    )


class DatabaseService:
    """Service for PostgreSQL database operations."""

    def __init__(self, dsn: Optional[str] = None) -> None:
        """Initialize database service."""
        self.dsn = dsn or settings.postgres_url
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Create connection pool and make sure the schema exists."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=settings.postgres_min_pool_size,
                max_size=settings.postgres_max_pool_size,
                command_timeout=settings.database_timeout_seconds,
                init=_init_connection,
            )
            await self.ensure_schema()
        except Exception as e:
            raise DatabaseError(
                f"Failed to connect to database: {str(e)}") from e

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None

    def _require_pool(self) -> asyncpg.Pool:
        if not self.pool:
            raise DatabaseError("Database not connected")
        return self.pool

    async def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        pool = self._require_pool()
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)

    # Documents

    async def create_document(self, owner_id: str, data: DocumentCreate) -> Document:
        """
        Create a document together with its pending index status.

        Args:
            owner_id: Owner of the document.
            data: Extracted content and source metadata.

        Returns:
            Created document.
        """
        pool = self._require_pool()
        file_size = data.file_size
        if file_size is None:
            file_size = len(data.content.encode("utf-8"))

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        f"""
                        INSERT INTO documents AS d (
                            owner_id, title, content, content_origin, file_type,
                            file_size, file_path, url, metadata
                        )
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                        RETURNING {_DOCUMENT_COLUMNS}
                        """,
                        owner_id,
                        data.title,
                        data.content,
                        data.content_origin.value,
                        data.file_type,
                        file_size,
                        data.file_path,
                        data.url,
                        data.metadata,
                    )
                    await conn.execute(
                        "INSERT INTO document_index_status (document_id) VALUES ($1)",
                        row["id"],
                    )
                    return _document_from_row(row)
        except Exception as e:
            raise DatabaseError(f"Failed to create document: {str(e)}") from e

    async def get_document(
        self, document_id: str, owner_id: Optional[str] = None
    ) -> Optional[Document]:
        """
        Get a single document by ID.

        Args:
            document_id: Document UUID.
            owner_id: When given, only a document of this owner is returned.

        Returns:
            Document or None if not found.
        """
        pool = self._require_pool()
        if not _is_uuid(document_id):
            return None

        query = f"SELECT {_DOCUMENT_COLUMNS} FROM documents d WHERE d.id = $1"
        params = [document_id]
        if owner_id is not None:
            query += " AND d.owner_id = $2"
            params.append(owner_id)

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(query, *params)
                return _document_from_row(row) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to fetch document: {str(e)}") from e

    async def list_documents(
        self, owner_id: str, status: Optional[IndexState] = None
    ) -> List[DocumentWithStatus]:
        """
        List an owner's documents joined with their index status.

        Args:
            owner_id: Owner of the documents.
            status: Only return documents in this state.

        Returns:
            Newest documents first; completed listings are ordered by indexed_at.
        """
        pool = self._require_pool()
        query = f"""
            SELECT {_DOCUMENT_COLUMNS}, {_STATUS_COLUMNS}
            FROM documents d
            JOIN document_index_status s ON s.document_id = d.id
            WHERE d.owner_id = $1
        """
        params = [owner_id]
        if status is not None:
            query += " AND s.status = $2"
            params.append(status.value)
        if status == IndexState.COMPLETED:
            query += " ORDER BY s.indexed_at DESC"
        else:
            query += " ORDER BY d.created_at DESC"

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(query, *params)
                return [
                    DocumentWithStatus(
                        document=_document_from_row(row),
                        index_status=_status_from_row(row),
                    )
                    for row in rows
                ]
        except Exception as e:
            raise DatabaseError(f"Failed to list documents: {str(e)}") from e

    async def get_indexed_document_ids(self, owner_id: str) -> List[str]:
        """Ids of the owner's documents whose index status is completed."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT d.id
                    FROM documents d
                    JOIN document_index_status s ON s.document_id = d.id
                    WHERE d.owner_id = $1 AND s.status = 'completed'
                    """,
                    owner_id,
                )
                return [str(row["id"]) for row in rows]
        except Exception as e:
            raise DatabaseError(
                f"Failed to fetch indexed documents: {str(e)}") from e

    async def get_documents_by_ids(self, document_ids: List[str]) -> Dict[str, Document]:
        """Fetch several documents keyed by id."""
        pool = self._require_pool()
        ids = [doc_id for doc_id in document_ids if _is_uuid(doc_id)]
        if not ids:
            return {}
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents d WHERE d.id = ANY($1::uuid[])",
                    ids,
                )
                return {str(row["id"]): _document_from_row(row) for row in rows}
        except Exception as e:
            raise DatabaseError(f"Failed to fetch documents: {str(e)}") from e

    async def delete_document(self, document_id: str, owner_id: str) -> bool:
        """
        Delete a document; chunks and index status cascade.

        Returns:
            True if deleted, False if not found.
        """
        pool = self._require_pool()
        if not _is_uuid(document_id):
            return False
        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM documents WHERE id = $1 AND owner_id = $2",
                    document_id,
                    owner_id,
                )
                return result == "DELETE 1"
        except Exception as e:
            raise DatabaseError(f"Failed to delete document: {str(e)}") from e

    # Index status

    async def get_index_status(self, document_id: str) -> Optional[IndexStatus]:
        """Get the index status of a document."""
        pool = self._require_pool()
        if not _is_uuid(document_id):
            return None
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_STATUS_COLUMNS} FROM document_index_status s "
                    "WHERE s.document_id = $1",
                    document_id,
                )
                return _status_from_row(row) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to fetch index status: {str(e)}") from e

    async def claim_for_indexing(
        self, document_id: str, stale_after_seconds: int
    ) -> Optional[IndexStatus]:
        """
        Move a document to processing unless another attempt holds it.

        A processing row older than stale_after_seconds is treated as abandoned.

        Returns:
            The new status, or None if the document is already processing.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE document_index_status AS s
                    SET status = 'processing', error_message = NULL, indexed_at = NULL,
                        total_chunks = 0, processed_chunks = 0, updated_at = now()
                    WHERE s.document_id = $1
                      AND (s.status <> 'processing'
                           OR s.updated_at < now() - make_interval(secs => $2))
                    RETURNING {_STATUS_COLUMNS}
                    """,
                    document_id,
                    float(stale_after_seconds),
                )
                return _status_from_row(row) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to claim document: {str(e)}") from e

    async def update_progress(
        self, document_id: str, total_chunks: int, processed_chunks: int
    ) -> None:
        """Record chunk counts of an attempt in flight."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    UPDATE document_index_status
                    SET total_chunks = $2, processed_chunks = $3, updated_at = now()
                    WHERE document_id = $1
                    """,
                    document_id,
                    total_chunks,
                    processed_chunks,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to update progress: {str(e)}") from e

    async def complete_indexing(
        self, document_id: str, chunks: List[ChunkCreate]
    ) -> IndexStatus:
        """
        Persist the chunks of a successful attempt and mark it completed.

        Both writes happen in one transaction so readers never observe a
        half-written attempt.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        "DELETE FROM document_chunks WHERE document_id = $1", document_id
                    )
                    await conn.executemany(
                        """
                        INSERT INTO document_chunks (
                            document_id, chunk_index, chunk_text, chunk_metadata, point_id
                        )
                        VALUES ($1, $2, $3, $4, $5)
                        """,
                        [
                            (
                                document_id,
                                chunk.chunk_index,
                                chunk.chunk_text,
                                chunk.chunk_metadata,
                                chunk.point_id,
                            )
                            for chunk in chunks
                        ],
                    )
                    row = await conn.fetchrow(
                        f"""
                        UPDATE document_index_status AS s
                        SET status = 'completed', error_message = NULL, indexed_at = now(),
                            total_chunks = $2, processed_chunks = $2, updated_at = now()
                        WHERE s.document_id = $1
                        RETURNING {_STATUS_COLUMNS}
                        """,
                        document_id,
                        len(chunks),
                    )
                    return _status_from_row(row)
        except Exception as e:
            raise DatabaseError(f"Failed to complete indexing: {str(e)}") from e

    async def mark_failed(self, document_id: str, error_message: str) -> IndexStatus:
        """Mark the current attempt as failed."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE document_index_status AS s
                    SET status = 'failed', error_message = $2, indexed_at = NULL,
                        processed_chunks = 0, updated_at = now()
                    WHERE s.document_id = $1
                    RETURNING {_STATUS_COLUMNS}
                    """,
                    document_id,
                    error_message,
                )
                return _status_from_row(row)
        except Exception as e:
            raise DatabaseError(f"Failed to mark indexing failed: {str(e)}") from e

    async def reset_index(self, document_id: str) -> IndexStatus:
        """Delete a document's chunks and reset its status to pending."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        "DELETE FROM document_chunks WHERE document_id = $1", document_id
                    )
                    row = await conn.fetchrow(
                        f"""
                        UPDATE document_index_status AS s
                        SET status = 'pending', error_message = NULL, indexed_at = NULL,
                            total_chunks = 0, processed_chunks = 0, updated_at = now()
                        WHERE s.document_id = $1
                        RETURNING {_STATUS_COLUMNS}
                        """,
                        document_id,
                    )
                    return _status_from_row(row)
        except Exception as e:
            raise DatabaseError(f"Failed to reset index status: {str(e)}") from e

    # Chunks

    async def get_chunks(self, document_id: str) -> List[Chunk]:
        """Get a document's chunks ordered by chunk index."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT * FROM document_chunks WHERE document_id = $1 ORDER BY chunk_index",
                    document_id,
                )
                return [_chunk_from_row(row) for row in rows]
        except Exception as e:
            raise DatabaseError(f"Failed to fetch chunks: {str(e)}") from e

    async def get_point_ids(self, document_id: str) -> List[str]:
        """Get the vector point ids referenced by a document's chunks."""
        chunks = await self.get_chunks(document_id)
        return [chunk.point_id for chunk in chunks]

    async def get_chunks_by_point_ids(self, point_ids: List[str]) -> Dict[str, Chunk]:
        """Get chunks keyed by their vector point id."""
        pool = self._require_pool()
        ids = [point_id for point_id in point_ids if _is_uuid(point_id)]
        if not ids:
            return {}
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT * FROM document_chunks WHERE point_id = ANY($1::uuid[])",
                    ids,
                )
                return {str(row["point_id"]): _chunk_from_row(row) for row in rows}
        except Exception as e:
            raise DatabaseError(f"Failed to fetch chunks: {str(e)}") from e

    async def delete_chunks(self, document_id: str) -> None:
        """Delete all chunk rows of a document."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    "DELETE FROM document_chunks WHERE document_id = $1", document_id
                )
        except Exception as e:
            raise DatabaseError(f"Failed to delete chunks: {str(e)}") from e

    # Chat

    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        """Get a chat session by id."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT * FROM chat_sessions WHERE session_id = $1", session_id
                )
                return _session_from_row(row) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to fetch session: {str(e)}") from e

    async def ensure_session(self, session_id: str, owner_id: str) -> ChatSession:
        """Create the session if it does not exist and return it."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO chat_sessions (session_id, owner_id)
                    VALUES ($1, $2)
                    ON CONFLICT (session_id) DO NOTHING
                    """,
                    session_id,
                    owner_id,
                )
                row = await conn.fetchrow(
                    "SELECT * FROM chat_sessions WHERE session_id = $1", session_id
                )
                return _session_from_row(row)
        except Exception as e:
            raise DatabaseError(f"Failed to create session: {str(e)}") from e

    async def list_sessions(self, owner_id: str) -> List[ChatSession]:
        """List an owner's sessions, most recently active first."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT * FROM chat_sessions WHERE owner_id = $1 ORDER BY updated_at DESC",
                    owner_id,
                )
                return [_session_from_row(row) for row in rows]
        except Exception as e:
            raise DatabaseError(f"Failed to list sessions: {str(e)}") from e

    async def add_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        sources: Optional[List[SourceAttribution]] = None,
    ) -> ChatMessage:
        """Append a message to a session."""
        pool = self._require_pool()
        payload = [source.model_dump() for source in sources or []]
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        """
                        INSERT INTO chat_messages (session_id, role, content, sources)
                        VALUES ($1, $2, $3, $4)
                        RETURNING *
                        """,
                        session_id,
                        role.value,
                        content,
                        payload,
                    )
                    await conn.execute(
                        "UPDATE chat_sessions SET updated_at = now() WHERE session_id = $1",
                        session_id,
                    )
                    return _message_from_row(row)
        except Exception as e:
            raise DatabaseError(f"Failed to store message: {str(e)}") from e

    async def get_messages(self, session_id: str) -> List[ChatMessage]:
        """Get a session's messages, oldest first."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT * FROM chat_messages
                    WHERE session_id = $1
                    ORDER BY created_at ASC, id ASC
                    """,
                    session_id,
                )
                return [_message_from_row(row) for row in rows]
        except Exception as e:
            raise DatabaseError(f"Failed to fetch messages: {str(e)}") from e

    async def delete_messages(self, session_id: str) -> int:
        """Delete all messages of a session."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM chat_messages WHERE session_id = $1", session_id
                )
                return int(result.split()[-1])
        except Exception as e:
            raise DatabaseError(f"Failed to delete messages: {str(e)}") from e

    async def delete_sessions_for_owner(self, owner_id: str) -> int:
        """Delete all sessions of an owner; their messages cascade."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM chat_sessions WHERE owner_id = $1", owner_id
                )
                return int(result.split()[-1])
        except Exception as e:
            raise DatabaseError(f"Failed to delete sessions: {str(e)}") from e
