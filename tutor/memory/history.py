from __future__ import annotations

from typing import List, Optional

import config
from utils.error_handler import SessionOwnershipError
from utils.feature_flags import is_feature_enabled
from utils.logging import get_logger

from tutor.retrieval.context import ContextRetriever, RetrievalResult
from tutor.retrieval.embeddings import EmbeddingProvider, NullEmbeddingProvider, build_embedding_provider

from .schemas import Message, MessageMetadata, NewMessage, Role, Session
from .store import MessageStore, build_store

logger = get_logger(__name__)


class ChatHistory:
    """Chat-history facade used by the request handlers.

    Bundles the configured store, the embedding provider and the context
    retriever so handlers receive one injected object.
    """

    def __init__(
        self,
        store: MessageStore,
        embedder: Optional[EmbeddingProvider] = None,
        retriever: Optional[ContextRetriever] = None,
    ) -> None:
        self.store = store
        self.embedder = embedder or NullEmbeddingProvider()
        self.retriever = retriever or ContextRetriever(store, self.embedder)

    @classmethod
    def from_config(cls) -> "ChatHistory":
        return cls(build_store(), build_embedding_provider())

    @property
    def embeddings_enabled(self) -> bool:
        return not isinstance(self.embedder, NullEmbeddingProvider) and is_feature_enabled("use_embeddings")

    def _embedding_for(self, content: str, embedding: Optional[List[float]] = None) -> Optional[List[float]]:
        if not is_feature_enabled("store_embeddings"):
            return None
        if embedding:
            return list(embedding)
        return self.embedder.embed(content) or None

    def record_message(
        self,
        user_id: str,
        session_id: str,
        role: Role,
        content: str,
        metadata: Optional[MessageMetadata] = None,
        embedding: Optional[List[float]] = None,
    ) -> Message:
        """Embed (when enabled) and store one chat turn.

        A precomputed ``embedding`` of ``content`` is stored as-is instead of
        calling the provider again.
        """
        return self.store.append_message(
            user_id,
            session_id,
            role,
            content,
            metadata=metadata,
            embedding=self._embedding_for(content, embedding),
        )

    def record_exchange(
        self,
        user_id: str,
        session_id: str,
        question: str,
        answer: str,
        metadata: Optional[MessageMetadata] = None,
        answer_metadata: Optional[MessageMetadata] = None,
        question_embedding: Optional[List[float]] = None,
    ) -> List[Message]:
        """Store a user question and the tutor's answer together, or neither."""
        entries = [
            NewMessage(
                role="user",
                content=question,
                metadata=metadata,
                embedding=self._embedding_for(question, question_embedding),
            ),
            NewMessage(
                role="assistant",
                content=answer,
                metadata=answer_metadata or metadata,
                embedding=self._embedding_for(answer),
            ),
        ]
        return self.store.append_messages(user_id, session_id, entries)

    def ensure_session_access(self, session_id: str, user_id: str) -> None:
        """Raise ``SessionOwnershipError`` if ``session_id`` exists under another user.

        Unknown ids pass; they are created on first write.
        """
        owner = self.store.session_owner(session_id)
        if owner is not None and owner != user_id:
            raise SessionOwnershipError(f"Session {session_id} does not belong to user {user_id}")

    def relevant_context(self, user_id: str, query: str, limit: int = config.TUTOR_CONTEXT_LIMIT) -> RetrievalResult:
        result = self.retriever.retrieve(user_id, query, limit)
        logger.info(f"Retrieved {len(result.scored)} context messages for {user_id} via {result.strategy.value}")
        return result

    # Session pass-throughs -------------------------------------------------

    def create_session(self, user_id: str, title: Optional[str] = None) -> Session:
        return self.store.create_session(user_id, title)

    def get_session(self, session_id: str, user_id: str) -> Optional[Session]:
        return self.store.get_session(session_id, user_id)

    def list_sessions(self, user_id: str) -> List[Session]:
        return self.store.list_user_sessions(user_id)

    def session_messages(self, session_id: str, user_id: str) -> List[Message]:
        return self.store.list_session_messages(session_id, user_id)

    def delete_session(self, session_id: str, user_id: str) -> bool:
        return self.store.delete_session(session_id, user_id)
