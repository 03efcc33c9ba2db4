"""Domain types for the chat-history store.

These are plain pydantic models so every store implementation returns the same
objects and the HTTP layer can serialise them without a separate DTO layer.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant"]


class MessageMetadata(BaseModel):
    """Learning context attached to a chat turn."""

    language: Optional[str] = None
    topic: Optional[str] = None
    level: Optional[str] = None
    translation: Optional[str] = None


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    session_id: str
    role: Role
    content: str
    created_at: datetime
    metadata: Optional[MessageMetadata] = None
    embedding: Optional[List[float]] = Field(default=None, exclude=True)

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)


class Session(BaseModel):
    id: str
    user_id: str
    title: str
    created_at: datetime
    updated_at: datetime
    message_count: int = 0


class NewMessage(BaseModel):
    """A chat turn waiting to be stored; the store assigns id and timestamp."""

    role: Role
    content: str
    metadata: Optional[MessageMetadata] = None
    embedding: Optional[List[float]] = None
