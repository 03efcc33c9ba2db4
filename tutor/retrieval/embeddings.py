"""Embedding providers.

A provider turns text into a fixed-length vector.  An empty list means "no
embedding" (provider unconfigured, blank input, request failed); callers
never see an exception from :meth:`EmbeddingProvider.embed`.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

import openai

import config
from tutor.utils.openai_client import get_openai_client
from utils.error_handler import EmbeddingError, handle_exceptions, retry
from utils.feature_flags import is_feature_enabled
from utils.logging import get_logger

logger = get_logger(__name__)


class EmbeddingProvider(Protocol):
    def embed(self, text: str) -> List[float]:
        ...


class NullEmbeddingProvider:
    """Provider used when embeddings are unavailable; always returns ``[]``."""

    def embed(self, text: str) -> List[float]:
        return []


class OpenAIEmbeddingProvider:
    def __init__(
        self,
        client: Optional[openai.OpenAI] = None,
        model: str = config.OPENAI_EMBEDDING_MODEL,
        dimensions: int = config.VECTOR_DB_DIMENSIONS,
        max_attempts: int = config.EMBEDDING_MAX_ATTEMPTS,
        retry_delay: float = 0.5,
    ) -> None:
        self._client = client
        self.model = model
        self.dimensions = dimensions
        self._request = retry(max_attempts=max_attempts, delay=retry_delay)(self._create_embedding)

    def _get_client(self) -> openai.OpenAI:
        # Initialize OpenAI client only when needed
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    def _create_embedding(self, text: str) -> List[float]:
        response = self._get_client().embeddings.create(
            input=[text],
            model=self.model,
            dimensions=self.dimensions,
        )
        if not response.data:
            raise EmbeddingError("embedding response contained no data")
        return list(response.data[0].embedding)

    @handle_exceptions(Exception, default_value=list)
    def embed(self, text: str) -> List[float]:
        """Generate a vector embedding for ``text`` (``[]`` on failure)."""
        text = (text or "").replace("\n", " ").strip()
        if not text:
            return []
        return self._request(text)


def build_embedding_provider() -> EmbeddingProvider:
    """Return the OpenAI provider when a key is configured and embeddings are enabled."""
    if not is_feature_enabled("use_embeddings"):
        logger.info("Embeddings disabled by feature flag; using keyword retrieval")
        return NullEmbeddingProvider()
    if not config.OPENAI_API_KEY:
        logger.warning("OpenAI not configured, skipping embedding generation")
        return NullEmbeddingProvider()
    return OpenAIEmbeddingProvider()
