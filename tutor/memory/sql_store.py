from __future__ import annotations

import uuid
from typing import List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DbSession, sessionmaker

from utils.error_handler import SessionOwnershipError, StoreError
from utils.logging import get_logger

from .db import init_db, make_engine, make_session_factory
from .models import ChatMessageRecord, ChatSessionRecord
from .schemas import Message, MessageMetadata, NewMessage, Session
from .store import Clock, MessageStore, as_utc, default_session_title, utcnow

logger = get_logger(__name__)


def _to_message(row: ChatMessageRecord) -> Message:
    return Message(
        id=row.id,
        user_id=row.user_id,
        session_id=row.session_id,
        role=row.role,
        content=row.content,
        created_at=as_utc(row.created_at),
        metadata=MessageMetadata(**row.meta) if row.meta else None,
        embedding=row.embedding or None,
    )


def _to_session(row: ChatSessionRecord) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        message_count=row.message_count,
    )


class SqlMessageStore(MessageStore):
    """Chat history persisted through SQLAlchemy.

    Every public method opens its own short-lived session and closes it
    before returning.  ``SQLAlchemyError`` is re-raised as ``StoreError`` so
    callers only deal with one failure type.
    """

    def __init__(self, session_factory: sessionmaker, clock: Clock = utcnow) -> None:
        self._session_factory = session_factory
        self._clock = clock

    @classmethod
    def from_url(cls, database_url: str, clock: Clock = utcnow) -> "SqlMessageStore":
        engine = make_engine(database_url)
        init_db(engine)
        return cls(make_session_factory(engine), clock=clock)

    # -- sessions -----------------------------------------------------------

    def _new_session_row(self, user_id: str, title: Optional[str], session_id: Optional[str]) -> ChatSessionRecord:
        now = self._clock()
        return ChatSessionRecord(
            id=session_id or str(uuid.uuid4()),
            user_id=user_id,
            title=title or default_session_title(now),
            created_at=now,
            updated_at=now,
            message_count=0,
        )

    def create_session(self, user_id: str, title: Optional[str] = None, session_id: Optional[str] = None) -> Session:
        db: DbSession = self._session_factory()
        try:
            row = self._new_session_row(user_id, title, session_id)
            db.add(row)
            db.commit()
            return _to_session(row)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create session for {user_id}: {e}")
            raise StoreError("could not create session") from e
        finally:
            db.close()

    def get_session(self, session_id: str, user_id: str) -> Optional[Session]:
        db: DbSession = self._session_factory()
        try:
            row = (
                db.query(ChatSessionRecord)
                .filter(ChatSessionRecord.id == session_id, ChatSessionRecord.user_id == user_id)
                .first()
            )
            return _to_session(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError("could not load session") from e
        finally:
            db.close()

    def list_user_sessions(self, user_id: str) -> List[Session]:
        db: DbSession = self._session_factory()
        try:
            rows = (
                db.query(ChatSessionRecord)
                .filter(ChatSessionRecord.user_id == user_id)
                .order_by(ChatSessionRecord.updated_at.desc())
                .all()
            )
            return [_to_session(r) for r in rows]
        except SQLAlchemyError as e:
            raise StoreError("could not list sessions") from e
        finally:
            db.close()

    def delete_session(self, session_id: str, user_id: str) -> bool:
        db: DbSession = self._session_factory()
        try:
            # Messages first; SQLite does not enforce the cascade by default.
            db.query(ChatMessageRecord).filter(
                ChatMessageRecord.session_id == session_id, ChatMessageRecord.user_id == user_id
            ).delete(synchronize_session=False)
            deleted = (
                db.query(ChatSessionRecord)
                .filter(ChatSessionRecord.id == session_id, ChatSessionRecord.user_id == user_id)
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted > 0
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to delete session {session_id}: {e}")
            raise StoreError("could not delete session") from e
        finally:
            db.close()

    # -- messages -----------------------------------------------------------

    def session_owner(self, session_id: str) -> Optional[str]:
        db: DbSession = self._session_factory()
        try:
            row = db.get(ChatSessionRecord, session_id)
            return row.user_id if row else None
        except SQLAlchemyError as e:
            raise StoreError("could not load session") from e
        finally:
            db.close()

    def append_messages(self, user_id: str, session_id: str, entries: Sequence[NewMessage]) -> List[Message]:
        if not entries:
            return []
        db: DbSession = self._session_factory()
        try:
            session_row = db.get(ChatSessionRecord, session_id)
            if session_row is None:
                session_row = self._new_session_row(user_id, None, session_id)
                db.add(session_row)
                db.flush()
            elif session_row.user_id != user_id:
                raise SessionOwnershipError(f"Session {session_id} does not belong to user {user_id}")

            rows = []
            for entry in entries:
                row = ChatMessageRecord(
                    id=str(uuid.uuid4()),
                    user_id=user_id,
                    session_id=session_id,
                    role=entry.role,
                    content=entry.content,
                    meta=entry.metadata.model_dump(exclude_none=True) if entry.metadata else None,
                    embedding=[float(x) for x in entry.embedding] if entry.embedding else None,
                    created_at=self._clock(),
                )
                db.add(row)
                rows.append(row)
            db.flush()

            session_row.message_count = (
                db.query(func.count(ChatMessageRecord.id))
                .filter(ChatMessageRecord.session_id == session_id, ChatMessageRecord.user_id == user_id)
                .scalar()
            )
            session_row.updated_at = rows[-1].created_at
            db.commit()
            return [_to_message(r) for r in rows]
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to store messages for session {session_id}: {e}")
            raise StoreError("could not store messages") from e
        finally:
            # Closing without commit discards a half-built batch.
            db.close()

    def list_session_messages(self, session_id: str, user_id: str) -> List[Message]:
        db: DbSession = self._session_factory()
        try:
            rows = (
                db.query(ChatMessageRecord)
                .filter(ChatMessageRecord.session_id == session_id, ChatMessageRecord.user_id == user_id)
                .order_by(ChatMessageRecord.created_at.asc())
                .all()
            )
            return [_to_message(r) for r in rows]
        except SQLAlchemyError as e:
            raise StoreError("could not list session messages") from e
        finally:
            db.close()

    def recent_user_messages(self, user_id: str, limit: int) -> List[Message]:
        if limit <= 0:
            return []
        db: DbSession = self._session_factory()
        try:
            rows = (
                db.query(ChatMessageRecord)
                .filter(ChatMessageRecord.user_id == user_id)
                .order_by(ChatMessageRecord.created_at.desc())
                .limit(limit)
                .all()
            )
            return [_to_message(r) for r in rows]
        except SQLAlchemyError as e:
            raise StoreError("could not load recent messages") from e
        finally:
            db.close()
