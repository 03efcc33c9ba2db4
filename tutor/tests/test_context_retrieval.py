from datetime import timedelta

import pytest

from tutor.memory.in_memory import InMemoryMessageStore
from tutor.memory.sql_store import SqlMessageStore
from tutor.retrieval.context import ContextRetriever, ScoredMessage, Strategy, select_top
from utils.error_handler import StoreError
from utils.feature_flags import set_feature_flag


def _seed(store, clock, user_id, contents, embeddings=None, session_id="s1"):
    """Append ``contents`` one minute apart; returns the stored messages."""
    embeddings = embeddings or {}
    stored = []
    for content in contents:
        clock.advance(minutes=1)
        stored.append(
            store.append_message(user_id, session_id, "user", content, embedding=embeddings.get(content))
        )
    return stored


PIZZA_TALK = ["I like pizza", "pizza is great", "what is your name"]


class FailingStore(InMemoryMessageStore):
    """Raises on the first ``failures`` reads of recent messages."""

    def __init__(self, clock, failures=1):
        super().__init__(clock=clock)
        self.failures = failures

    def recent_user_messages(self, user_id, limit):
        if self.failures > 0:
            self.failures -= 1
            raise StoreError("database unavailable")
        return super().recent_user_messages(user_id, limit)


class ExplodingEmbedder:
    def embed(self, text):
        raise RuntimeError("provider down")


# ---------------------------------------------------------------------------
# Keyword + recency fallback
# ---------------------------------------------------------------------------


def test_keyword_fallback_selects_overlapping_messages_in_time_order(memory_store, clock):
    m1, m2, m3 = _seed(memory_store, clock, "u1", PIZZA_TALK)
    retriever = ContextRetriever(memory_store, clock=clock)

    result = retriever.retrieve("u1", "pizza", limit=2)

    assert result.strategy is Strategy.KEYWORD
    assert [m.id for m in result.messages] == [m1.id, m2.id]


def test_get_relevant_context_returns_plain_messages(memory_store, clock):
    m1, m2, _ = _seed(memory_store, clock, "u1", PIZZA_TALK)
    retriever = ContextRetriever(memory_store, clock=clock)

    assert retriever.get_relevant_context("u1", "pizza", limit=2) == [m1, m2]


def test_equal_overlap_prefers_the_newer_message(memory_store, clock):
    older, newer = _seed(memory_store, clock, "u1", ["hola amigo", "hola amigo"])
    retriever = ContextRetriever(memory_store, clock=clock)

    result = retriever.retrieve("u1", "hola", limit=1)

    assert [m.id for m in result.messages] == [newer.id]
    assert result.scored[0].score >= 0.7


def test_empty_query_still_ranks_by_recency(memory_store, clock):
    msgs = _seed(memory_store, clock, "u1", ["uno", "dos", "tres"])
    retriever = ContextRetriever(memory_store, clock=clock)

    result = retriever.retrieve("u1", "", limit=2)

    assert [m.id for m in result.messages] == [msgs[1].id, msgs[2].id]


def test_candidate_pool_is_limited_to_twice_the_limit(memory_store, clock):
    # The only keyword match is the oldest message, outside the newest 2.
    _seed(memory_store, clock, "u1", ["pizza time", "uno", "dos", "tres"])
    retriever = ContextRetriever(memory_store, clock=clock)

    result = retriever.retrieve("u1", "pizza", limit=1)

    assert [m.content for m in result.messages] == ["tres"]


def test_weights_are_configurable(memory_store, clock):
    _seed(memory_store, clock, "u1", ["pizza", "nada"])
    retriever = ContextRetriever(memory_store, clock=clock, keyword_weight=0.0, recency_weight=1.0)

    result = retriever.retrieve("u1", "pizza", limit=1)

    assert [m.content for m in result.messages] == ["nada"]


# ---------------------------------------------------------------------------
# Embedding similarity
# ---------------------------------------------------------------------------


def test_embedding_strategy_finds_semantic_match_without_keywords(memory_store, clock, make_embedder):
    vectors = {
        "I like pizza": [1.0, 0.0, 0.0],
        "pizza is great": [0.9, 0.1, 0.0],
        "what is your name": [0.0, 0.2, 1.0],
    }
    _, _, m3 = _seed(memory_store, clock, "u1", PIZZA_TALK, embeddings=vectors)
    embedder = make_embedder({"pizza": [0.0, 0.0, 1.0]})
    retriever = ContextRetriever(memory_store, embedder, clock=clock)

    result = retriever.retrieve("u1", "pizza", limit=2)

    assert result.strategy is Strategy.EMBEDDING
    assert m3.id in [m.id for m in result.messages]
    assert result.scored[-1].score == pytest.approx(1 / (1.04 ** 0.5))


def test_embedding_strategy_skips_messages_without_embeddings(memory_store, clock, make_embedder):
    vectors = {"I like pizza": [1.0, 0.0]}
    m1, _, _ = _seed(memory_store, clock, "u1", PIZZA_TALK, embeddings=vectors)
    retriever = ContextRetriever(memory_store, make_embedder({"pizza": [1.0, 0.0]}), clock=clock)

    result = retriever.retrieve("u1", "pizza", limit=5)

    assert result.strategy is Strategy.EMBEDDING
    assert [m.id for m in result.messages] == [m1.id]


def test_similarity_threshold_drops_weak_matches(memory_store, clock, make_embedder):
    vectors = {"I like pizza": [1.0, 0.0], "pizza is great": [0.0, 1.0]}
    m1, _, _ = _seed(memory_store, clock, "u1", PIZZA_TALK, embeddings=vectors)
    retriever = ContextRetriever(
        memory_store, make_embedder({"pizza": [1.0, 0.1]}), clock=clock, similarity_threshold=0.3
    )

    assert [m.id for m in retriever.get_relevant_context("u1", "pizza", limit=5)] == [m1.id]


def test_no_query_embedding_uses_keyword_fallback(memory_store, clock, make_embedder):
    _seed(memory_store, clock, "u1", PIZZA_TALK, embeddings={"I like pizza": [1.0]})
    embedder = make_embedder()  # knows no text -> empty vector

    result = ContextRetriever(memory_store, embedder, clock=clock).retrieve("u1", "pizza", limit=2)

    assert result.strategy is Strategy.KEYWORD
    assert [m.content for m in result.messages] == ["I like pizza", "pizza is great"]


def test_disabled_embeddings_flag_uses_keyword_fallback(memory_store, clock, make_embedder):
    set_feature_flag("use_embeddings", False)
    _seed(memory_store, clock, "u1", PIZZA_TALK, embeddings={"I like pizza": [1.0]})
    embedder = make_embedder({"pizza": [1.0]})

    result = ContextRetriever(memory_store, embedder, clock=clock).retrieve("u1", "pizza", limit=2)

    assert result.strategy is Strategy.KEYWORD
    assert embedder.calls == []


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


def test_embedding_provider_error_falls_back_to_keywords(memory_store, clock):
    _seed(memory_store, clock, "u1", PIZZA_TALK)

    result = ContextRetriever(memory_store, ExplodingEmbedder(), clock=clock).retrieve("u1", "pizza", limit=2)

    assert result.strategy is Strategy.KEYWORD
    assert len(result.messages) == 2


def test_store_error_in_vector_path_falls_back_to_keywords(clock, make_embedder):
    store = FailingStore(clock, failures=1)
    _seed(store, clock, "u1", PIZZA_TALK, embeddings={"I like pizza": [1.0]})

    result = ContextRetriever(store, make_embedder({"pizza": [1.0]}), clock=clock).retrieve("u1", "pizza", limit=2)

    assert result.strategy is Strategy.KEYWORD
    assert [m.content for m in result.messages] == ["I like pizza", "pizza is great"]


def test_store_error_everywhere_gives_empty_context(clock, make_embedder):
    store = FailingStore(clock, failures=2)
    _seed(store, clock, "u1", PIZZA_TALK)

    result = ContextRetriever(store, make_embedder({"pizza": [1.0]}), clock=clock).retrieve("u1", "pizza")

    assert result.strategy is Strategy.KEYWORD
    assert result.messages == []


# ---------------------------------------------------------------------------
# Failure handling (continued)
# ---------------------------------------------------------------------------


class CorruptRowStore(InMemoryMessageStore):
    """Fails reads the way a row that no longer validates would."""

    def recent_user_messages(self, user_id, limit):
        raise ValueError("stored metadata is not a mapping")


def test_unexpected_store_error_in_keyword_path_gives_empty_context(clock):
    store = CorruptRowStore(clock=clock)
    _seed(store, clock, "u1", PIZZA_TALK)

    result = ContextRetriever(store, clock=clock).retrieve("u1", "pizza")

    assert result.strategy is Strategy.KEYWORD
    assert result.messages == []


def test_query_embedding_is_returned_for_reuse(memory_store, clock, make_embedder):
    _seed(memory_store, clock, "u1", PIZZA_TALK)
    embedder = make_embedder({"pizza": [0.0, 1.0]})

    result = ContextRetriever(memory_store, embedder, clock=clock).retrieve("u1", "pizza")
    fallback = ContextRetriever(memory_store, clock=clock).retrieve("u1", "pizza")

    assert result.query_embedding == [0.0, 1.0]
    assert fallback.query_embedding == []


# ---------------------------------------------------------------------------
# SQL-backed history
# ---------------------------------------------------------------------------


@pytest.fixture
def sql_store(clock, tmp_path):
    return SqlMessageStore.from_url(f"sqlite:///{tmp_path / 'context.db'}", clock=clock)


def test_keyword_fallback_on_sql_store(sql_store, clock):
    m1, m2, _ = _seed(sql_store, clock, "u1", PIZZA_TALK)

    result = ContextRetriever(sql_store, clock=clock).retrieve("u1", "pizza", limit=2)

    assert result.strategy is Strategy.KEYWORD
    assert [m.id for m in result.messages] == [m1.id, m2.id]
    # Rows come back from SQLite without tzinfo and are still aged correctly.
    newest_age = 60 / timedelta(days=7).total_seconds()
    assert result.scored[-1].score == pytest.approx(0.7 + 0.3 * (1 - newest_age))


def test_embedding_strategy_on_sql_store(sql_store, clock, make_embedder):
    vectors = {
        "I like pizza": [1.0, 0.0, 0.0],
        "pizza is great": [0.9, 0.1, 0.0],
        "what is your name": [0.0, 0.2, 1.0],
    }
    _, _, m3 = _seed(sql_store, clock, "u1", PIZZA_TALK, embeddings=vectors)
    _seed(sql_store, clock, "u2", ["someone else"], embeddings={"someone else": [0.0, 0.0, 1.0]}, session_id="s2")
    embedder = make_embedder({"pizza": [0.0, 0.0, 1.0]})

    result = ContextRetriever(sql_store, embedder, clock=clock).retrieve("u1", "pizza", limit=1)

    assert result.strategy is Strategy.EMBEDDING
    assert [m.id for m in result.messages] == [m3.id]
    assert result.scored[0].score == pytest.approx(1 / (1.04 ** 0.5))


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("limit", [1, 3, 10])
@pytest.mark.parametrize("with_embeddings", [False, True])
def test_results_respect_limit_and_are_chronological(memory_store, clock, make_embedder, limit, with_embeddings):
    contents = [f"message number {i} about travel" for i in range(15)]
    vectors = {c: [1.0, float(i % 4)] for i, c in enumerate(contents)} if with_embeddings else {}
    _seed(memory_store, clock, "u1", contents, embeddings=vectors)
    embedder = make_embedder({"travel plans": [1.0, 1.0]})

    messages = ContextRetriever(memory_store, embedder, clock=clock).get_relevant_context("u1", "travel plans", limit)

    assert len(messages) <= limit
    stamps = [m.created_at for m in messages]
    assert stamps == sorted(stamps)


def test_other_users_messages_never_appear(memory_store, clock, make_embedder):
    _seed(memory_store, clock, "alice", ["pizza for alice"], embeddings={"pizza for alice": [1.0, 0.0]}, session_id="a")
    _seed(memory_store, clock, "bob", ["pizza for bob"], embeddings={"pizza for bob": [1.0, 0.0]}, session_id="b")
    embedder = make_embedder({"pizza": [1.0, 0.0]})

    for emb in (embedder, None):
        messages = ContextRetriever(memory_store, emb, clock=clock).get_relevant_context("bob", "pizza")
        assert messages and all(m.user_id == "bob" for m in messages)


def test_non_positive_limit_returns_nothing(memory_store, clock):
    _seed(memory_store, clock, "u1", PIZZA_TALK)
    retriever = ContextRetriever(memory_store, clock=clock)

    assert retriever.get_relevant_context("u1", "pizza", limit=0) == []
    assert retriever.get_relevant_context("u1", "pizza", limit=-3) == []


def test_select_top_orders_selection_by_time(memory_store, clock):
    a, b, c = _seed(memory_store, clock, "u1", ["a", "b", "c"])
    scored = [ScoredMessage(c, 0.1), ScoredMessage(b, 0.9), ScoredMessage(a, 0.5)]

    assert [s.message.id for s in select_top(scored, 2)] == [a.id, b.id]
