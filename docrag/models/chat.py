"""Chat models for grounded question answering."""

from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"


class SourceAttribution(BaseModel):
    """A document cited by an assistant answer."""

    document_id: str
    title: str
    type: str
    relevance_score: float


class ChatSession(BaseModel):
    """A conversation owned by a single owner."""

    session_id: str
    owner_id: str
    title: str = "Chat Session"
    created_at: datetime
    updated_at: datetime


class ChatMessage(BaseModel):
    """A single turn in a chat session."""

    id: int
    session_id: str
    role: MessageRole
    content: str
    sources: List[SourceAttribution] = Field(default_factory=list)
    created_at: datetime


class ChatResponse(BaseModel):
    """Answer returned to the caller of send_chat_message."""

    content: str
    sources: List[SourceAttribution] = Field(default_factory=list)
    timestamp: datetime
