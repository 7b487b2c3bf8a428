"""Retrieval engine answering questions from indexed documents."""

import logging
import time
from typing import Dict, List, Optional

from docrag.core.config import settings
from docrag.core.exceptions import (
    DatabaseError,
    NotFoundError,
    ProviderUnavailableError,
    RetrievalFailedError,
)
from docrag.models.chat import (
    ChatMessage,
    ChatResponse,
    ChatSession,
    MessageRole,
    SourceAttribution,
)
from docrag.models.document import Chunk
from docrag.models.vector import VectorMatch
from docrag.monitoring.metrics import (
    query_counter,
    query_errors_total,
    query_latency_seconds,
    query_no_context_total,
)
from docrag.services.database import DatabaseService
from docrag.services.embedding import EmbeddingService
from docrag.services.llm import LLMService
from docrag.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)

NO_CONTEXT_ANSWER = (
    "I couldn't find any relevant information in the indexed documents. "
    "Please make sure your documents are indexed and contain information "
    "related to your query."
)

SYSTEM_PROMPT_TEMPLATE = """You are an AI assistant that answers questions based on the provided context from documents.
Only answer based on the available context from the documents.
If the context doesn't contain relevant information, say so clearly.

Context:
{context}"""

MIN_TRUNCATED_CHARS = 100


class RetrievalEngine:
    """Answers user queries grounded in the caller's indexed documents."""

    def __init__(
        self,
        database: DatabaseService,
        vector_db: VectorDBService,
        embedding_service: EmbeddingService,
        llm_service: LLMService,
        top_k: Optional[int] = None,
        max_context_chars: Optional[int] = None,
    ) -> None:
        """
        Initialize retrieval engine.

        Args:
            database: Relational store.
            vector_db: Vector index.
            embedding_service: Embedding provider, same model as indexing.
            llm_service: Language model provider.
            top_k: Number of chunks retrieved per query.
            max_context_chars: Upper bound for the context block.
        """
        self.database = database
        self.vector_db = vector_db
        self.embedding_service = embedding_service
        self.llm_service = llm_service
        self.top_k = top_k or settings.top_k
        self.max_context_chars = max_context_chars or settings.max_context_chars

    async def _owned_session(self, session_id: str, owner_id: str) -> Optional[ChatSession]:
        session = await self.database.get_session(session_id)
        if session and session.owner_id != owner_id:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    def _build_context(self, matches: List[VectorMatch], chunks: Dict[str, Chunk]) -> tuple[str, List[VectorMatch]]:
        """
        Build a rank-tagged context block within the character limit.

        Args:
            matches: Search hits ordered by descending score.
            chunks: Chunk rows keyed by point id.

        Returns:
            Tuple of (context string, used matches).
        """
        context_parts = []
        total_chars = 0
        used_matches = []

        for match in matches:
            chunk = chunks.get(match.id)
            if chunk is None:
                continue
            header = f"[Source {len(used_matches) + 1}]: "
            separator_length = 2 if context_parts else 0
            part = header + chunk.chunk_text

            if total_chars + len(part) + separator_length <= self.max_context_chars:
                context_parts.append(part)
                total_chars += len(part) + separator_length
                used_matches.append(match)
            else:
                remaining_space = self.max_context_chars - total_chars - separator_length
                if remaining_space - len(header) > MIN_TRUNCATED_CHARS:
                    context_parts.append(part[:remaining_space])
                    used_matches.append(match)
                break

        return "\n\n".join(context_parts), used_matches

    async def _sources(self, matches: List[VectorMatch]) -> List[SourceAttribution]:
        """One attribution per document, scored by its best matching chunk."""
        best_scores: Dict[str, float] = {}
        for match in matches:
            doc_id = match.document_id
            if doc_id not in best_scores or match.score > best_scores[doc_id]:
                best_scores[doc_id] = match.score

        documents = await self.database.get_documents_by_ids(list(best_scores))
        sources = []
        for doc_id, score in best_scores.items():
            document = documents.get(doc_id)
            if document is None:
                continue
            sources.append(
                SourceAttribution(
                    document_id=doc_id,
                    title=document.title,
                    type=document.file_type or document.content_origin.value,
                    relevance_score=round(score, 4),
                )
            )
        return sources

    async def answer(self, owner_id: str, query: str, session_id: str) -> ChatResponse:
        """
        Answer a query from the owner's indexed documents.

        The user turn is stored before retrieval starts and is kept even when
        a provider fails.

        Args:
            owner_id: Owner whose documents are searched.
            query: The user's question.
            session_id: Chat session receiving both turns.

        Returns:
            Answer with its source attributions.

        Raises:
            NotFoundError: If the session belongs to another owner.
            RetrievalFailedError: If a provider or store call fails after the
                user turn was recorded.
        """
        start_time = time.time()
        query_counter.inc()

        await self._owned_session(session_id, owner_id)
        await self.database.ensure_session(session_id, owner_id)
        await self.database.add_message(session_id, MessageRole.USER, query)

        try:
            content, sources = await self._retrieve_and_generate(owner_id, query)
            message = await self.database.add_message(
                session_id, MessageRole.ASSISTANT, content, sources)
        except (ProviderUnavailableError, DatabaseError) as e:
            query_errors_total.inc()
            logger.error(f"Query failed in session {session_id}: {str(e)}")
            raise RetrievalFailedError(f"Failed to answer query: {str(e)}") from e

        latency = time.time() - start_time
        query_latency_seconds.observe(latency)
        logger.info(
            f"Answered query in session {session_id} with {len(sources)} sources "
            f"in {latency * 1000:.2f}ms"
        )
        return ChatResponse(
            content=message.content,
            sources=message.sources,
            timestamp=message.created_at,
        )

    async def _retrieve_and_generate(
        self, owner_id: str, query: str
    ) -> tuple[str, List[SourceAttribution]]:
        document_ids = await self.database.get_indexed_document_ids(owner_id)
        if not document_ids:
            query_no_context_total.inc()
            return NO_CONTEXT_ANSWER, []

        query_embedding = await self.embedding_service.embed(query)
        matches = await self.vector_db.search(query_embedding, self.top_k, document_ids)
        matches = sorted(matches, key=lambda match: match.score, reverse=True)

        # Hits without a chunk row belong to an attempt that is not committed.
        chunks = await self.database.get_chunks_by_point_ids([match.id for match in matches])
        context, used_matches = self._build_context(matches, chunks)
        if not used_matches:
            query_no_context_total.inc()
            return NO_CONTEXT_ANSWER, []

        content = await self.llm_service.complete(
            SYSTEM_PROMPT_TEMPLATE.format(context=context), query)
        sources = await self._sources(used_matches)
        return content, sources

    async def history(self, session_id: str, owner_id: str) -> List[ChatMessage]:
        """
        Get the messages of a session, oldest first.

        An unknown session has an empty history.
        """
        session = await self._owned_session(session_id, owner_id)
        if session is None:
            return []
        return await self.database.get_messages(session_id)

    async def clear_history(self, session_id: str, owner_id: str) -> int:
        """Delete all messages of a session; idempotent."""
        session = await self._owned_session(session_id, owner_id)
        if session is None:
            return 0
        deleted = await self.database.delete_messages(session_id)
        logger.info(f"Cleared {deleted} messages from session {session_id}")
        return deleted

    async def sessions(self, owner_id: str) -> List[ChatSession]:
        """List the owner's chat sessions."""
        return await self.database.list_sessions(owner_id)
