"""
Pytest configuration for the docrag test suite.

Async tests run through pytest-asyncio in auto mode (see pyproject.toml).
Every external collaborator is replaced by an in-memory fake from fakes.py.
"""
import pytest

from docrag.core.dependencies import ServiceContainer
from docrag.services.chunking import ChunkingService
from docrag.services.index_manager import IndexManager
from docrag.services.retrieval import RetrievalEngine

from fakes import FakeDatabase, FakeEmbedding, FakeLLM, FakeVectorDB


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def vector_db():
    return FakeVectorDB()


@pytest.fixture
def embedding():
    return FakeEmbedding()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def chunking():
    return ChunkingService(chunk_size=120, chunk_overlap=30)


@pytest.fixture
def index_manager(database, vector_db, embedding, chunking):
    return IndexManager(
        database=database,
        vector_db=vector_db,
        embedding_service=embedding,
        chunking_service=chunking,
        upsert_batch_size=2,
    )


@pytest.fixture
def retrieval_engine(database, vector_db, embedding, llm):
    return RetrievalEngine(
        database=database,
        vector_db=vector_db,
        embedding_service=embedding,
        llm_service=llm,
        top_k=3,
    )


@pytest.fixture
def services(database, vector_db, embedding, llm, chunking):
    return ServiceContainer(
        database=database,
        vector_db=vector_db,
        embedding_service=embedding,
        llm_service=llm,
        chunking_service=chunking,
    )


@pytest.fixture
def kb(services):
    return services.knowledge_base
