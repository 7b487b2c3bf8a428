"""Models exchanged with the vector index."""

from typing import List

from pydantic import BaseModel, Field


class ChunkPayload(BaseModel):
    """Metadata stored alongside each chunk vector.

    owner_id is carried so a search can always be scoped to one owner,
    even though the document_id filter alone is sufficient today.
    """

    document_id: str
    owner_id: str
    chunk_index: int
    title: str
    file_type: str


class VectorPoint(BaseModel):
    """A vector ready to be upserted."""

    id: str
    vector: List[float]
    payload: ChunkPayload


class VectorMatch(BaseModel):
    """A similarity search hit."""

    id: str
    score: float
    payload: dict = Field(default_factory=dict)

    @property
    def document_id(self) -> str:
        return str(self.payload.get("document_id", ""))
