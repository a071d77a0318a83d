"""Embedding service.

Generates vector embeddings for passages and queries through an external
embedding provider.
"""

import asyncio
import logging
from abc import ABC, abstractmethod

import httpx

from noterag.core.config import get_settings
from noterag.core.exceptions import EmbeddingProviderError
from noterag.observability.metrics import EMBEDDING_REQUESTS

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """Maps a text to a vector via some external call."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises:
            EmbeddingProviderError: If the provider call fails
        """

    async def aclose(self) -> None:
        """Release any connections held by the provider."""


class HttpEmbeddingProvider(EmbeddingProvider):
    """Embedding provider reached over HTTP.

    Request body is ``{"input": text}``, the response is expected to be
    ``{"embedding": [float, ...]}``.
    """

    def __init__(self, client: httpx.AsyncClient, url: str):
        self.client = client
        self.url = url

    async def aclose(self) -> None:
        await self.client.aclose()

    async def embed(self, text: str) -> list[float]:
        try:
            response = await self.client.post(self.url, json={"input": text})
        except httpx.HTTPError as e:
            raise EmbeddingProviderError(f"Embedding request failed: {e}") from e

        if not response.is_success:
            raise EmbeddingProviderError(
                f"Failed to get embedding: {response.status_code} {response.reason_phrase}"
            )

        try:
            embedding = response.json()["embedding"]
        except (ValueError, KeyError, TypeError) as e:
            raise EmbeddingProviderError(f"Malformed embedding response: {e}") from e

        if not isinstance(embedding, list) or not all(
            isinstance(x, int | float) and not isinstance(x, bool) for x in embedding
        ):
            raise EmbeddingProviderError("Malformed embedding response: expected a list of numbers")

        return [float(x) for x in embedding]


class Embedder:
    """Embedding client used by the vector store.

    Batches run with bounded concurrency but results keep input order.
    The dimension of the first returned vector is remembered and every
    later vector must match it.
    """

    DEFAULT_MAX_CONCURRENCY = 4

    def __init__(
        self,
        provider: EmbeddingProvider,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.provider = provider
        self.max_concurrency = max_concurrency
        self.dimension: int | None = None

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingProviderError: If the provider fails or the dimension changes
        """
        try:
            embedding = await self.provider.embed(text)
        except EmbeddingProviderError:
            EMBEDDING_REQUESTS.labels(status="error").inc()
            raise
        except Exception as e:
            EMBEDDING_REQUESTS.labels(status="error").inc()
            raise EmbeddingProviderError(f"Embedding provider failed: {e}") from e

        EMBEDDING_REQUESTS.labels(status="ok").inc()

        if self.dimension is None:
            self.dimension = len(embedding)
        elif len(embedding) != self.dimension:
            raise EmbeddingProviderError(
                f"Embedding dimension changed: expected {self.dimension}, got {len(embedding)}"
            )

        return embedding

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        At most ``max_concurrency`` provider calls are in flight. If any
        call fails the whole batch fails.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors, in input order
        """
        if not texts:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def embed_one(text: str) -> list[float]:
            async with semaphore:
                return await self.embed_text(text)

        logger.debug(
            f"[Embedder] Embedding {len(texts)} texts (concurrency={self.max_concurrency})"
        )

        tasks = [asyncio.ensure_future(embed_one(t)) for t in texts]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # Don't leave siblings running after the first failure
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def embed_query(self, query: str) -> list[float]:
        """Embed a search query.

        Alias for embed_text, but can be extended for query-specific processing.
        """
        return await self.embed_text(query)


def create_embedding_provider() -> EmbeddingProvider:
    """Build the embedding provider selected by configuration."""
    settings = get_settings()

    if settings.embedding_backend == "http":
        logger.info(f"Initializing HTTP embedding provider at '{settings.embedding_url}'")
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout_seconds, connect=30.0)
        )
        return HttpEmbeddingProvider(client, settings.embedding_url)

    from noterag.agent.runtime import get_runtime

    return get_runtime()


# Singleton instance
_embedder: Embedder | None = None


def get_embedder() -> Embedder:
    """Get or create the global Embedder instance."""
    global _embedder

    if _embedder is None:
        settings = get_settings()
        _embedder = Embedder(
            provider=create_embedding_provider(),
            max_concurrency=settings.embedding_max_concurrency,
        )

    return _embedder


async def shutdown_embedder() -> None:
    """Close the global Embedder's provider."""
    global _embedder
    if _embedder:
        await _embedder.provider.aclose()
        _embedder = None
