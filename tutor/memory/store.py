"""Storage interface for chat history.

Two implementations exist: :class:`~tutor.memory.in_memory.InMemoryMessageStore`
(process-local lists) and :class:`~tutor.memory.sql_store.SqlMessageStore`
(SQLAlchemy).  One of them is chosen once at start-up by :func:`build_store`
and injected wherever history is needed.
"""

from __future__ import annotations

import abc
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from utils.logging import get_logger, log_function_call

from .schemas import Message, MessageMetadata, NewMessage, Role, Session

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(ts: datetime) -> datetime:
    """Treat naive datetimes (SQLite drops tzinfo) as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def default_session_title(now: datetime) -> str:
    return f"Chat {now:%Y-%m-%d}"


class MessageStore(abc.ABC):
    """Append-only message log grouped into per-user sessions."""

    def append_message(
        self,
        user_id: str,
        session_id: str,
        role: Role,
        content: str,
        metadata: Optional[MessageMetadata] = None,
        embedding: Optional[Sequence[float]] = None,
    ) -> Message:
        """Store a message with a server-assigned id and timestamp.

        An unknown ``session_id`` creates the session for ``user_id``; a
        session owned by someone else raises ``SessionOwnershipError``.
        The session's ``updated_at`` and ``message_count`` are refreshed.
        """
        entry = NewMessage(
            role=role,
            content=content,
            metadata=metadata,
            embedding=list(embedding) if embedding else None,
        )
        return self.append_messages(user_id, session_id, [entry])[0]

    @abc.abstractmethod
    def append_messages(self, user_id: str, session_id: str, entries: Sequence[NewMessage]) -> List[Message]:
        """Store ``entries`` in order as one unit: either all are saved or none.

        Session handling is the same as for :meth:`append_message`.
        """

    @abc.abstractmethod
    def session_owner(self, session_id: str) -> Optional[str]:
        """User id owning ``session_id``, or ``None`` for an unknown session."""

    @abc.abstractmethod
    def list_session_messages(self, session_id: str, user_id: str) -> List[Message]:
        """Messages of one session, oldest first."""

    @abc.abstractmethod
    def recent_user_messages(self, user_id: str, limit: int) -> List[Message]:
        """The user's ``limit`` most recent messages across sessions, newest first."""

    @abc.abstractmethod
    def create_session(self, user_id: str, title: Optional[str] = None) -> Session:
        ...

    @abc.abstractmethod
    def get_session(self, session_id: str, user_id: str) -> Optional[Session]:
        ...

    @abc.abstractmethod
    def list_user_sessions(self, user_id: str) -> List[Session]:
        """Sessions of ``user_id``, most recently updated first."""

    @abc.abstractmethod
    def delete_session(self, session_id: str, user_id: str) -> bool:
        """Remove the session and all its messages; ``False`` if nothing matched."""


@log_function_call()
def build_store(backend: Optional[str] = None, database_url: Optional[str] = None) -> MessageStore:
    """Construct the store selected by configuration.

    ``backend`` is ``"memory"`` or ``"sql"``; defaults come from ``config``.
    """
    import config

    backend = (backend or config.TUTOR_STORE_BACKEND).lower()
    if backend == "memory":
        from .in_memory import InMemoryMessageStore

        logger.info("Chat history kept in process memory")
        return InMemoryMessageStore()
    if backend == "sql":
        from .sql_store import SqlMessageStore

        url = database_url or config.TUTOR_MEMORY_DB
        logger.info(f"Chat history stored in {url.split('://', 1)[0]} database")
        return SqlMessageStore.from_url(url)
    raise ValueError(f"Unknown store backend: {backend!r} (expected 'memory' or 'sql')")
