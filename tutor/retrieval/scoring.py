"""Keyword-overlap + recency scoring used when no query embedding exists."""

from datetime import datetime, timedelta
from typing import List

from tutor.memory.schemas import Message
from tutor.memory.store import as_utc

DEFAULT_KEYWORD_WEIGHT = 0.7
DEFAULT_RECENCY_WEIGHT = 0.3
DEFAULT_RECENCY_WINDOW = timedelta(days=7)


def tokenize(text: str) -> List[str]:
    return text.lower().split()


def keyword_overlap(query: str, content: str) -> float:
    """Share of query tokens that occur in ``content``.

    Query tokens are not deduplicated: every occurrence is its own hit or
    miss, so "pizza pizza pasta" against "I like pizza" scores 2/3.
    """
    query_words = tokenize(query)
    if not query_words:
        return 0.0
    content_words = set(tokenize(content))
    hits = sum(1 for word in query_words if word in content_words)
    return hits / len(query_words)


def recency_score(created_at: datetime, now: datetime, window: timedelta = DEFAULT_RECENCY_WINDOW) -> float:
    """Linear decay from 1 (just now) to 0 (``window`` old or older)."""
    age = (as_utc(now) - as_utc(created_at)).total_seconds()
    score = 1.0 - age / window.total_seconds()
    return min(1.0, max(0.0, score))


def keyword_recency_score(
    query: str,
    message: Message,
    now: datetime,
    *,
    keyword_weight: float = DEFAULT_KEYWORD_WEIGHT,
    recency_weight: float = DEFAULT_RECENCY_WEIGHT,
    window: timedelta = DEFAULT_RECENCY_WINDOW,
) -> float:
    return (
        keyword_weight * keyword_overlap(query, message.content)
        + recency_weight * recency_score(message.created_at, now, window)
    )
