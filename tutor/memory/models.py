from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey, Index

from .db import Base


class ChatSessionRecord(Base):
    """ORM model for a conversation thread owned by one user."""

    __tablename__ = "chat_sessions"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(128), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    message_count = Column(Integer, nullable=False, default=0)


class ChatMessageRecord(Base):
    """ORM model representing a single chat turn (either user or assistant).

    Attributes
    ----------
    id
        UUID string assigned by the store.
    user_id
        Identifier issued by the identity provider.
    session_id
        Owning session; the session always belongs to the same user.
    role
        "user" or "assistant" – mirrors the chat-completion roles so stored
        turns can be reused verbatim in prompts.
    content
        The natural-language message.
    meta
        Optional learning metadata (language, topic, level, translation).
        ``metadata`` is reserved by the declarative base, hence the name.
    embedding
        Optional embedding vector as a JSON list of floats.
    created_at
        Server-assigned UTC timestamp.
    """

    __tablename__ = "chat_messages"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(128), nullable=False)
    session_id = Column(String(64), ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    meta = Column(JSON, nullable=True)
    embedding = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_chat_messages_user_created", "user_id", "created_at"),
        Index("ix_chat_messages_session_user", "session_id", "user_id"),
    )
