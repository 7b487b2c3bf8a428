"""Document models for the knowledge base."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ContentOrigin(str, Enum):
    """Where a document's content came from."""

    TEXT = "text"
    FILE = "file"
    URL = "url"


class IndexState(str, Enum):
    """Lifecycle states of a document's index status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Document(BaseModel):
    """Document model representing an uploaded source."""

    id: str
    owner_id: str
    title: str
    content: str
    content_origin: ContentOrigin
    file_type: str
    file_size: int = Field(default=0, ge=0)
    file_path: Optional[str] = None
    url: Optional[str] = None
    metadata: dict = Field(default_factory=dict)
    created_at: datetime

    class Config:
        """Pydantic config."""

        from_attributes = True


class DocumentCreate(BaseModel):
    """Model for creating a document from already extracted content."""

    title: str = Field(..., min_length=1, max_length=500)
    content: str
    content_origin: ContentOrigin = ContentOrigin.TEXT
    file_type: str = "text"
    file_size: Optional[int] = Field(default=None, ge=0)
    file_path: Optional[str] = None
    url: Optional[str] = None
    metadata: dict = Field(default_factory=dict)


class IndexStatus(BaseModel):
    """Per-document indexing state."""

    document_id: str
    status: IndexState = IndexState.PENDING
    error_message: Optional[str] = None
    indexed_at: Optional[datetime] = None
    total_chunks: int = 0
    processed_chunks: int = 0
    updated_at: Optional[datetime] = None


class Chunk(BaseModel):
    """Chunk model representing an indexed document fragment."""

    id: int
    document_id: str
    chunk_index: int = Field(ge=0)
    chunk_text: str
    chunk_metadata: dict = Field(default_factory=dict)
    point_id: str


class ChunkCreate(BaseModel):
    """A chunk whose vector has been upserted and is ready to persist."""

    chunk_index: int = Field(ge=0)
    chunk_text: str
    chunk_metadata: dict = Field(default_factory=dict)
    point_id: str


class DocumentWithStatus(BaseModel):
    """Document listing entry joined with its index status."""

    document: Document
    index_status: IndexStatus


class ClearIndexResult(BaseModel):
    """Outcome of clearing an owner's index."""

    documents_deindexed: int = 0
    sessions_deleted: int = 0
