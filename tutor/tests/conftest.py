import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]  # repo root
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Keep the suite offline and independent from any local .env.
os.environ["OPENAI_API_KEY"] = ""
os.environ["TUTOR_STORE_BACKEND"] = "memory"
os.environ.pop("TUTOR_SIMILARITY_THRESHOLD", None)

import pytest  # noqa: E402

from utils.feature_flags import FEATURE_FLAGS  # noqa: E402


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeEmbedder:
    """Looks embeddings up by exact text; unknown text has no embedding."""

    def __init__(self, vectors: dict | None = None):
        self.vectors = dict(vectors or {})
        self.calls = []

    def embed(self, text: str):
        self.calls.append(text)
        return list(self.vectors.get(text, []))


@pytest.fixture(autouse=True)
def reset_feature_flags():
    saved = dict(FEATURE_FLAGS)
    for name in FEATURE_FLAGS:
        FEATURE_FLAGS[name] = True
    yield
    FEATURE_FLAGS.clear()
    FEATURE_FLAGS.update(saved)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    from tutor.memory.in_memory import InMemoryMessageStore

    return InMemoryMessageStore(clock=clock)


@pytest.fixture
def make_embedder():
    return FakeEmbedder
