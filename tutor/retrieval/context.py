"""Select prior messages to send to the tutor model as conversation context.

Two strategies rank the candidates:

* **embedding** – cosine similarity between the query embedding and each
  candidate's stored embedding (candidates without one are skipped);
* **keyword** – ``0.7 × keyword overlap + 0.3 × recency``; used when the query
  cannot be embedded or the embedding path fails.

Both rank only the user's ``limit × 2`` most recent messages, keep the top
``limit`` and hand them back oldest first so the model reads a chronological
transcript.  Retrieval never raises: the worst case is an empty context.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import List, Optional, Sequence

import config
from tutor.memory.schemas import Message
from tutor.memory.store import Clock, MessageStore, utcnow
from utils.feature_flags import is_feature_enabled
from utils.logging import get_logger

from .embeddings import EmbeddingProvider, NullEmbeddingProvider
from .scoring import keyword_recency_score
from .similarity import cosine_similarity

logger = get_logger(__name__)


class Strategy(str, Enum):
    EMBEDDING = "embedding"
    KEYWORD = "keyword"


@dataclass(frozen=True)
class ScoredMessage:
    message: Message
    score: float


@dataclass
class RetrievalResult:
    strategy: Strategy
    scored: List[ScoredMessage] = field(default_factory=list)
    # Embedding of the query, empty when it could not be embedded.
    query_embedding: List[float] = field(default_factory=list)

    @property
    def messages(self) -> List[Message]:
        return [s.message for s in self.scored]


def select_top(scored: Sequence[ScoredMessage], limit: int) -> List[ScoredMessage]:
    """Keep the ``limit`` best scores, then order them by timestamp.

    Sorting is stable and the input is newest first, so equal scores favour
    the newer message.
    """
    if limit <= 0:
        return []
    best = sorted(scored, key=lambda s: s.score, reverse=True)[:limit]
    return sorted(best, key=lambda s: s.message.created_at)


class ContextRetriever:
    def __init__(
        self,
        store: MessageStore,
        embedder: Optional[EmbeddingProvider] = None,
        *,
        keyword_weight: float = config.TUTOR_KEYWORD_WEIGHT,
        recency_weight: float = config.TUTOR_RECENCY_WEIGHT,
        recency_window: timedelta = timedelta(days=config.TUTOR_RECENCY_WINDOW_DAYS),
        similarity_threshold: Optional[float] = config.TUTOR_SIMILARITY_THRESHOLD,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.embedder = embedder or NullEmbeddingProvider()
        self.keyword_weight = keyword_weight
        self.recency_weight = recency_weight
        self.recency_window = recency_window
        self.similarity_threshold = similarity_threshold
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_relevant_context(self, user_id: str, query: str, limit: int = config.TUTOR_CONTEXT_LIMIT) -> List[Message]:
        return self.retrieve(user_id, query, limit).messages

    def retrieve(self, user_id: str, query: str, limit: int = config.TUTOR_CONTEXT_LIMIT) -> RetrievalResult:
        if limit <= 0:
            return RetrievalResult(Strategy.KEYWORD)

        query_embedding = self._embed_query(query)
        if query_embedding:
            try:
                scored = self._rank_by_embedding(user_id, query_embedding, limit)
                return RetrievalResult(Strategy.EMBEDDING, scored, query_embedding)
            except Exception as e:
                logger.warning(f"Vector search failed for user {user_id}, falling back to keywords: {e}")

        return RetrievalResult(Strategy.KEYWORD, self._rank_by_keywords(user_id, query, limit), query_embedding)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _embed_query(self, query: str) -> List[float]:
        if not is_feature_enabled("use_embeddings"):
            return []
        try:
            return list(self.embedder.embed(query) or [])
        except Exception as e:
            logger.warning(f"Embedding provider failed: {e}")
            return []

    def _candidates(self, user_id: str, limit: int) -> List[Message]:
        rows = self.store.recent_user_messages(user_id, limit * 2)
        return [m for m in rows if m.user_id == user_id]

    def _rank_by_embedding(self, user_id: str, query_embedding: List[float], limit: int) -> List[ScoredMessage]:
        scored = [
            ScoredMessage(m, cosine_similarity(query_embedding, m.embedding))
            for m in self._candidates(user_id, limit)
            if m.has_embedding
        ]
        if self.similarity_threshold is not None:
            scored = [s for s in scored if s.score >= self.similarity_threshold]
        return select_top(scored, limit)

    def _rank_by_keywords(self, user_id: str, query: str, limit: int) -> List[ScoredMessage]:
        try:
            candidates = self._candidates(user_id, limit)
            now = self._clock()
            scored = [
                ScoredMessage(
                    m,
                    keyword_recency_score(
                        query or "",
                        m,
                        now,
                        keyword_weight=self.keyword_weight,
                        recency_weight=self.recency_weight,
                        window=self.recency_window,
                    ),
                )
                for m in candidates
            ]
        except Exception as e:
            logger.error(f"Could not rank history for user {user_id}, continuing without context: {e}")
            return []
        return select_top(scored, limit)
