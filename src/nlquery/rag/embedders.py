"""
Embedding Providers

Turns document text and questions into vectors for the vector index.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

import openai

from src.common.resilience import RetryConfig, retry_with_backoff
from src.nlquery.config import NLQueryConfig
from src.nlquery.exceptions import MissingConfigError

logger = logging.getLogger(__name__)

EMBEDDING_RETRY = RetryConfig(
    max_attempts=3,
    base_delay=1.0,
    retryable_exceptions=(openai.RateLimitError, openai.APIConnectionError),
)


class Embedder(ABC):
    """Abstract base class for embedding providers."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the embedding dimension."""
        ...

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        ...

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts."""
        ...

    @property
    def stats(self) -> dict[str, int]:
        """Get embedder statistics (optional)."""
        return {}


class OpenAIEmbedder(Embedder):
    """
    Embedder using OpenAI's text-embedding models.

    Requests an explicit output dimensionality so vectors match the index
    (3072 for text-embedding-3-large). Concurrency is bounded by a
    semaphore and rate limits are retried with backoff.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "text-embedding-3-large",
        dimension: int = 3072,
        max_concurrent: int = 5,
        client: Any | None = None,
    ):
        """
        Initialize the OpenAI embedder.

        Args:
            api_key: OpenAI API key
            model: Embedding model name
            dimension: Requested output dimensionality
            max_concurrent: Maximum concurrent requests
            client: Pre-built AsyncOpenAI client
        """
        self._model = model
        self._dimension = dimension
        self._client = client or openai.AsyncOpenAI(api_key=api_key)
        self._semaphore = asyncio.Semaphore(max_concurrent)

        self._total_requests = 0
        self._total_tokens = 0
        self._rate_limit_hits = 0

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def stats(self) -> dict[str, int]:
        return {
            "total_requests": self._total_requests,
            "total_tokens": self._total_tokens,
            "rate_limit_hits": self._rate_limit_hits,
        }

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts, in input order."""
        if not texts:
            return []

        async with self._semaphore:
            response = await retry_with_backoff(
                self._client.embeddings.create,
                config=EMBEDDING_RETRY,
                on_retry=self._on_retry,
                model=self._model,
                input=texts,
                dimensions=self._dimension,
            )

        self._total_requests += 1
        usage = getattr(response, "usage", None)
        self._total_tokens += getattr(usage, "total_tokens", 0) or 0
        return [item.embedding for item in response.data]

    def _on_retry(self, attempt: int, error: Exception, delay: float) -> None:
        if isinstance(error, openai.RateLimitError):
            self._rate_limit_hits += 1


def create_embedder(config: NLQueryConfig) -> Embedder:
    """
    Create the embedder described by configuration.

    Raises:
        MissingConfigError: No OpenAI key configured
    """
    if not config.openai_api_key:
        raise MissingConfigError("openai_api_key", hint="Embeddings use the primary OpenAI key")
    return OpenAIEmbedder(
        api_key=config.openai_api_key,
        model=config.embedding_model,
        dimension=config.embedding_dimension,
        max_concurrent=config.embedding_max_concurrent,
    )
