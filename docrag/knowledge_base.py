"""Operations exposed to the CLI/HTTP layer."""

import logging
from datetime import datetime, timezone
from pathlib import PurePath
from typing import List, Optional

from docrag.core.exceptions import InconsistentStateError, NotFoundError
from docrag.models.chat import ChatMessage, ChatResponse, ChatSession
from docrag.models.document import (
    ClearIndexResult,
    ContentOrigin,
    Document,
    DocumentCreate,
    DocumentWithStatus,
    IndexState,
    IndexStatus,
)
from docrag.services.database import DatabaseService
from docrag.services.index_manager import IndexManager
from docrag.services.retrieval import RetrievalEngine

logger = logging.getLogger(__name__)


def default_session_id(owner_id: str) -> str:
    """Session used when the caller does not name one."""
    return f"{owner_id}:default"


class KnowledgeBase:
    """Document, index and chat operations scoped to an owner.

    Every method takes the owner id first and raises NotFoundError for
    documents or sessions that belong to someone else.
    """

    def __init__(
        self,
        database: DatabaseService,
        index_manager: IndexManager,
        retrieval_engine: RetrievalEngine,
    ) -> None:
        self.database = database
        self.index_manager = index_manager
        self.retrieval_engine = retrieval_engine

    # Documents

    async def create_document(self, owner_id: str, data: DocumentCreate) -> Document:
        """Store extracted content as a document with a pending index status."""
        document = await self.database.create_document(owner_id, data)
        logger.info(
            f"Created {document.content_origin.value} document {document.id} "
            f"for owner {owner_id}"
        )
        return document

    async def create_text_document(
        self, owner_id: str, content: str, title: Optional[str] = None
    ) -> Document:
        """Create a document from text typed in by the user."""
        title = title or f"Text Document - {datetime.now(timezone.utc).isoformat()}"
        return await self.create_document(
            owner_id,
            DocumentCreate(
                title=title,
                content=content,
                content_origin=ContentOrigin.TEXT,
                file_type="text",
                metadata={"manual": True},
            ),
        )

    async def create_file_document(
        self,
        owner_id: str,
        filename: str,
        content: str,
        file_path: Optional[str] = None,
        file_size: Optional[int] = None,
        metadata: Optional[dict] = None,
    ) -> Document:
        """Create a document from the extracted text of an uploaded file."""
        suffix = PurePath(filename).suffix.lstrip(".").lower()
        return await self.create_document(
            owner_id,
            DocumentCreate(
                title=filename,
                content=content,
                content_origin=ContentOrigin.FILE,
                file_type=suffix or "text",
                file_size=file_size,
                file_path=file_path,
                metadata={"original_filename": filename, **(metadata or {})},
            ),
        )

    async def create_url_document(
        self,
        owner_id: str,
        url: str,
        content: str,
        metadata: Optional[dict] = None,
    ) -> Document:
        """Create a document from the extracted text of a web page."""
        metadata = dict(metadata or {})
        metadata.setdefault("url", url)
        metadata.setdefault("fetched_at", datetime.now(timezone.utc).isoformat())
        return await self.create_document(
            owner_id,
            DocumentCreate(
                title=metadata.get("title") or url,
                content=content,
                content_origin=ContentOrigin.URL,
                file_type="html",
                url=url,
                metadata=metadata,
            ),
        )

    async def get_document(self, owner_id: str, document_id: str) -> Document:
        document = await self.database.get_document(document_id, owner_id)
        if not document:
            raise NotFoundError(f"Document {document_id} not found")
        return document

    async def list_documents(self, owner_id: str) -> List[DocumentWithStatus]:
        """All of an owner's documents with their index status, newest first."""
        return await self.database.list_documents(owner_id)

    async def delete_document(self, owner_id: str, document_id: str) -> None:
        await self.index_manager.delete(document_id, owner_id)

    # Index

    async def get_index_status(self, owner_id: str, document_id: str) -> IndexStatus:
        await self.get_document(owner_id, document_id)
        status = await self.database.get_index_status(document_id)
        if status is None:
            raise InconsistentStateError(
                f"Document {document_id} has no index status")
        return status

    async def index_document(self, owner_id: str, document_id: str) -> IndexStatus:
        """Index a document and return its final status."""
        return await self.index_manager.index(document_id, owner_id)

    async def deindex_document(self, owner_id: str, document_id: str) -> IndexStatus:
        """Remove a document from the index and return its reset status."""
        return await self.index_manager.deindex(document_id, owner_id)

    async def clear_index(self, owner_id: str) -> ClearIndexResult:
        return await self.index_manager.clear_all(owner_id)

    async def list_indexed_documents(self, owner_id: str) -> List[DocumentWithStatus]:
        """Documents whose index is completed, most recently indexed first."""
        return await self.database.list_documents(owner_id, status=IndexState.COMPLETED)

    # Chat

    async def send_chat_message(
        self, owner_id: str, message: str, session_id: Optional[str] = None
    ) -> ChatResponse:
        return await self.retrieval_engine.answer(
            owner_id, message, session_id or default_session_id(owner_id))

    async def get_chat_history(
        self, owner_id: str, session_id: Optional[str] = None
    ) -> List[ChatMessage]:
        return await self.retrieval_engine.history(
            session_id or default_session_id(owner_id), owner_id)

    async def clear_chat_history(
        self, owner_id: str, session_id: Optional[str] = None
    ) -> int:
        return await self.retrieval_engine.clear_history(
            session_id or default_session_id(owner_id), owner_id)

    async def list_chat_sessions(self, owner_id: str) -> List[ChatSession]:
        return await self.retrieval_engine.sessions(owner_id)
