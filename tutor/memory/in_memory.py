from __future__ import annotations

import uuid
from typing import List, Optional, Sequence

from utils.error_handler import SessionOwnershipError

from .schemas import Message, NewMessage, Session
from .store import Clock, MessageStore, default_session_title, utcnow


class InMemoryMessageStore(MessageStore):
    """Process-local store; history is lost on restart.

    Used when no database is configured and throughout the test-suite.
    """

    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock
        self._messages: List[Message] = []
        self._sessions: List[Session] = []

    # -- sessions -----------------------------------------------------------

    def _find_session(self, session_id: str) -> Optional[Session]:
        return next((s for s in self._sessions if s.id == session_id), None)

    def create_session(self, user_id: str, title: Optional[str] = None, session_id: Optional[str] = None) -> Session:
        now = self._clock()
        session = Session(
            id=session_id or str(uuid.uuid4()),
            user_id=user_id,
            title=title or default_session_title(now),
            created_at=now,
            updated_at=now,
            message_count=0,
        )
        self._sessions.append(session)
        return session

    def get_session(self, session_id: str, user_id: str) -> Optional[Session]:
        session = self._find_session(session_id)
        if session is None or session.user_id != user_id:
            return None
        return session

    def list_user_sessions(self, user_id: str) -> List[Session]:
        owned = [s for s in self._sessions if s.user_id == user_id]
        return sorted(owned, key=lambda s: s.updated_at, reverse=True)

    def delete_session(self, session_id: str, user_id: str) -> bool:
        before = len(self._sessions)
        self._sessions = [s for s in self._sessions if not (s.id == session_id and s.user_id == user_id)]
        self._messages = [m for m in self._messages if not (m.session_id == session_id and m.user_id == user_id)]
        return len(self._sessions) != before

    # -- messages -----------------------------------------------------------

    def session_owner(self, session_id: str) -> Optional[str]:
        session = self._find_session(session_id)
        return session.user_id if session else None

    def append_messages(self, user_id: str, session_id: str, entries: Sequence[NewMessage]) -> List[Message]:
        session = self._find_session(session_id)
        if session is not None and session.user_id != user_id:
            raise SessionOwnershipError(f"Session {session_id} does not belong to user {user_id}")

        # Build every message before touching state so a bad entry stores nothing.
        messages = [
            Message(
                id=str(uuid.uuid4()),
                user_id=user_id,
                session_id=session_id,
                role=entry.role,
                content=entry.content,
                created_at=self._clock(),
                metadata=entry.metadata,
                embedding=list(entry.embedding) if entry.embedding else None,
            )
            for entry in entries
        ]
        if not messages:
            return []

        if session is None:
            session = self.create_session(user_id, session_id=session_id)
        self._messages.extend(messages)

        session.updated_at = messages[-1].created_at
        session.message_count = sum(
            1 for m in self._messages if m.session_id == session_id and m.user_id == user_id
        )
        return messages

    def list_session_messages(self, session_id: str, user_id: str) -> List[Message]:
        rows = [m for m in self._messages if m.session_id == session_id and m.user_id == user_id]
        return sorted(rows, key=lambda m: m.created_at)

    def recent_user_messages(self, user_id: str, limit: int) -> List[Message]:
        if limit <= 0:
            return []
        rows = [m for m in self._messages if m.user_id == user_id]
        # Reverse first so equal timestamps keep "later insert = newer".
        rows.reverse()
        return sorted(rows, key=lambda m: m.created_at, reverse=True)[:limit]
