"""Dependency injection for services."""

import logging
from typing import List, Optional

from docrag.knowledge_base import KnowledgeBase
from docrag.services.chunking import ChunkingService
from docrag.services.database import DatabaseService
from docrag.services.embedding import EmbeddingService
from docrag.services.index_manager import IndexManager
from docrag.services.llm import LLMService
from docrag.services.locks import IndexLockRegistry
from docrag.services.retrieval import RetrievalEngine
from docrag.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Container for service instances.

    Any collaborator can be passed in to replace the default implementation,
    which is how tests substitute in-memory fakes for the external providers.
    """

    def __init__(
        self,
        database: Optional[DatabaseService] = None,
        vector_db: Optional[VectorDBService] = None,
        embedding_service: Optional[EmbeddingService] = None,
        llm_service: Optional[LLMService] = None,
        chunking_service: Optional[ChunkingService] = None,
    ) -> None:
        """Initialize service container."""
        self.database = database or DatabaseService()
        self.vector_db = vector_db or VectorDBService()
        self.embedding_service = embedding_service or EmbeddingService()
        self.llm_service = llm_service or LLMService()
        self.chunking_service = chunking_service or ChunkingService()
        self.locks = IndexLockRegistry()

        self.index_manager = IndexManager(
            database=self.database,
            vector_db=self.vector_db,
            embedding_service=self.embedding_service,
            chunking_service=self.chunking_service,
            locks=self.locks,
        )
        self.retrieval_engine = RetrievalEngine(
            database=self.database,
            vector_db=self.vector_db,
            embedding_service=self.embedding_service,
            llm_service=self.llm_service,
        )
        self.knowledge_base = KnowledgeBase(
            database=self.database,
            index_manager=self.index_manager,
            retrieval_engine=self.retrieval_engine,
        )

    def _lifecycle(self) -> List:
        """Services with connect/disconnect, in start order."""
        return [self.database, self.vector_db, self.embedding_service, self.llm_service]

    async def initialize(self) -> None:
        """
        Initialize all services.

        If a service fails to connect, the ones already connected are
        disconnected again before the error is raised.
        """
        started = []
        try:
            for service in self._lifecycle():
                await service.connect()
                started.append(service)
        except Exception as e:
            logger.error(f"Service startup failed: {str(e)}")
            await self._disconnect_all(reversed(started))
            raise

    async def shutdown(self) -> None:
        """Shutdown all services."""
        await self._disconnect_all(reversed(self._lifecycle()))

    async def _disconnect_all(self, services) -> None:
        for service in services:
            try:
                await service.disconnect()
            except Exception as e:
                logger.warning(
                    f"Failed to disconnect {service.__class__.__name__}: {str(e)}")
