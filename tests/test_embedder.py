"""Tests for the embedding client and HTTP embedding provider."""

import asyncio
import json

import httpx
import pytest

from noterag.core.exceptions import EmbeddingProviderError
from noterag.rag.embedder import Embedder, EmbeddingProvider, HttpEmbeddingProvider
from tests.conftest import FailingEmbeddingProvider, KeywordEmbeddingProvider


class SlowProvider(EmbeddingProvider):
    """Records the peak number of concurrent calls."""

    def __init__(self):
        self.in_flight = 0
        self.peak = 0

    async def embed(self, text: str) -> list[float]:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        # Later texts finish first, to check ordering
        await asyncio.sleep(0.01 / (int(text) + 1))
        self.in_flight -= 1
        return [float(text), 1.0]


class TestEmbedder:
    async def test_embed_text(self):
        embedder = Embedder(KeywordEmbeddingProvider())
        assert await embedder.embed_text("blue sky") == [1.0, 0.0, 1.0, 0.0]
        assert embedder.dimension == 4

    async def test_embed_texts_preserves_order_with_bounded_concurrency(self):
        provider = SlowProvider()
        embedder = Embedder(provider, max_concurrency=3)

        vectors = await embedder.embed_texts([str(i) for i in range(10)])

        assert [v[0] for v in vectors] == [float(i) for i in range(10)]
        assert 1 < provider.peak <= 3

    async def test_embed_texts_empty(self):
        provider = KeywordEmbeddingProvider()
        assert await Embedder(provider).embed_texts([]) == []
        assert provider.calls == []

    async def test_batch_fails_as_a_whole(self):
        provider = FailingEmbeddingProvider(marker="bad")
        embedder = Embedder(provider, max_concurrency=1)

        with pytest.raises(EmbeddingProviderError):
            await embedder.embed_texts(["ok", "bad", "ok again"])

    async def test_unexpected_errors_are_wrapped(self):
        class Broken(EmbeddingProvider):
            async def embed(self, text):
                raise RuntimeError("boom")

        with pytest.raises(EmbeddingProviderError, match="boom"):
            await Embedder(Broken()).embed_text("x")

    async def test_dimension_change_rejected(self):
        class Shifting(EmbeddingProvider):
            def __init__(self):
                self.n = 1

            async def embed(self, text):
                self.n += 1
                return [1.0] * self.n

        embedder = Embedder(Shifting())
        await embedder.embed_text("a")
        with pytest.raises(EmbeddingProviderError, match="dimension"):
            await embedder.embed_text("b")

    async def test_embed_query_is_embed_text(self):
        embedder = Embedder(KeywordEmbeddingProvider())
        assert await embedder.embed_query("green grass") == await embedder.embed_text("green grass")

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            Embedder(KeywordEmbeddingProvider(), max_concurrency=0)


def make_http_provider(handler) -> HttpEmbeddingProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpEmbeddingProvider(client, "http://embeddings.test/api/embeddings")


class TestHttpEmbeddingProvider:
    async def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"embedding": [0.1, 0.2, 3]})

        provider = make_http_provider(handler)
        assert await provider.embed("hello") == [0.1, 0.2, 3.0]
        assert seen["body"] == {"input": "hello"}

    async def test_non_success_status(self):
        provider = make_http_provider(lambda request: httpx.Response(500))
        with pytest.raises(EmbeddingProviderError, match="500"):
            await provider.embed("hello")

    async def test_missing_embedding_field(self):
        provider = make_http_provider(lambda request: httpx.Response(200, json={"data": []}))
        with pytest.raises(EmbeddingProviderError):
            await provider.embed("hello")

    async def test_non_numeric_embedding(self):
        provider = make_http_provider(
            lambda request: httpx.Response(200, json={"embedding": ["a", "b"]})
        )
        with pytest.raises(EmbeddingProviderError):
            await provider.embed("hello")

    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_http_provider(handler)
        with pytest.raises(EmbeddingProviderError, match="connection refused"):
            await provider.embed("hello")
