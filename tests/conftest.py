"""
Shared test fixtures and fakes.
"""

import json
from collections.abc import AsyncIterator

import pytest

from noterag.core.exceptions import EmbeddingProviderError, GenerationError
from noterag.rag.chunking import RecursiveChunker
from noterag.rag.corpus import CorpusDocument, InMemoryDocumentSource
from noterag.rag.embedder import Embedder, EmbeddingProvider
from noterag.rag.generator import ChatMessage, GenerationProvider
from noterag.rag.processor import DocumentProcessor
from noterag.rag.retriever import RAGService
from noterag.rag.store_cache import StoreCache

KEYWORDS = ("sky", "grass", "blue", "green")


def block_content(*paragraphs: str) -> str:
    """Serialize paragraphs as block-tree note content."""
    return json.dumps(
        [
            {
                "id": f"block-{i}",
                "type": "paragraph",
                "props": {},
                "content": [{"type": "text", "text": text, "styles": {}}],
                "children": [],
            }
            for i, text in enumerate(paragraphs)
        ]
    )


class KeywordEmbeddingProvider(EmbeddingProvider):
    """Deterministic embeddings: one axis per keyword, value = occurrence count."""

    def __init__(self, keywords: tuple[str, ...] = KEYWORDS):
        self.keywords = keywords
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        lowered = text.lower()
        return [float(lowered.count(k)) for k in self.keywords]


class FailingEmbeddingProvider(EmbeddingProvider):
    """Fails on texts containing a marker, succeeds otherwise."""

    def __init__(self, marker: str = ""):
        self.marker = marker
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.marker in text:
            raise EmbeddingProviderError("Failed to get embedding: 500 Internal Server Error")
        return [1.0, 0.0]


class FakeGenerator(GenerationProvider):
    """Scripted generation provider.

    Args:
        answer: Returned by complete()
        fragments: Yielded by stream()
        error: Raised by complete(), and by stream() at ``error_at``
        error_at: Fragment index at which stream() raises (0 = before any)
    """

    def __init__(
        self,
        answer: str = "answer",
        fragments: tuple[str, ...] = (),
        error: Exception | None = None,
        error_at: int = 0,
    ):
        self.answer = answer
        self.fragments = fragments
        self.error = error
        self.error_at = error_at
        self.requests: list[list[ChatMessage]] = []
        self.stream_closed = False

    async def complete(self, messages: list[ChatMessage]) -> str:
        self.requests.append(messages)
        if self.error:
            raise self.error
        return self.answer

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]:
        self.requests.append(messages)
        try:
            for i, fragment in enumerate(self.fragments):
                if self.error and i == self.error_at:
                    raise self.error
                yield fragment
            if self.error and self.error_at >= len(self.fragments):
                raise self.error
        finally:
            self.stream_closed = True


def server_error() -> GenerationError:
    return GenerationError(
        "Failed to get chat response: 500 Internal Server Error", status_code=500
    )


@pytest.fixture
def provider() -> KeywordEmbeddingProvider:
    return KeywordEmbeddingProvider()


@pytest.fixture
def embedder(provider) -> Embedder:
    return Embedder(provider, max_concurrency=2)


@pytest.fixture
def source() -> InMemoryDocumentSource:
    """Owner u1 has two notes and one note that was never written."""
    return InMemoryDocumentSource(
        {
            "u1": [
                CorpusDocument(id="doc-a", title="Doc A", content=block_content("The sky is blue.")),
                CorpusDocument(id="doc-b", title="Doc B", content=block_content("Grass is green.")),
                CorpusDocument(id="doc-c", title="Untitled", content=None),
            ]
        }
    )


@pytest.fixture
def processor(source, embedder) -> DocumentProcessor:
    return DocumentProcessor(source, embedder, chunker=RecursiveChunker())


@pytest.fixture
def make_service(processor):
    """Build a RAGService around the shared processor and a given generator."""

    def factory(generator: GenerationProvider, cache: StoreCache | None = None) -> RAGService:
        return RAGService(processor=processor, generator=generator, cache=cache or StoreCache())

    return factory
