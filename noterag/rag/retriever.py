"""RAG query orchestration.

Retrieves the passages most relevant to a question from the owner's
notes, grounds a prompt with them and drives answer generation, either
buffered or streamed.
"""

import inspect
import logging
import time
from collections.abc import AsyncIterator, Callable
from typing import Any

from noterag.core.config import get_settings
from noterag.core.exceptions import GenerationError, RetrievalError
from noterag.observability.metrics import QUERY_ERRORS, QUERY_LATENCY
from noterag.rag.generator import ChatMessage, GenerationProvider
from noterag.rag.processor import DocumentProcessor
from noterag.rag.store_cache import StoreCache
from noterag.rag.vector_store import Passage, VectorStore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_TEMPLATE = (
    "Answer the user's question based on the following context:\n\nContext: {context}\n\n"
)

DEFAULT_TOP_K = 3

ChunkCallback = Callable[[str], Any]
CompleteCallback = Callable[[], Any]
ErrorCallback = Callable[[Exception], Any]


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    """Invoke a callback that may be sync or async."""
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class RAGService:
    """Retrieve-then-generate over one owner's notes.

    Vector stores are built on first use per owner and kept in the
    injected StoreCache until invalidated.
    """

    def __init__(
        self,
        processor: DocumentProcessor,
        generator: GenerationProvider,
        cache: StoreCache | None = None,
        top_k: int = DEFAULT_TOP_K,
    ):
        if top_k < 1:
            raise ValueError("top_k must be at least 1")
        self.processor = processor
        self.generator = generator
        self.cache = cache if cache is not None else StoreCache()
        self.top_k = top_k

    async def get_store(self, owner_id: str) -> VectorStore:
        """Return the owner's store, building it on first access.

        Raises:
            RetrievalError: If the corpus can't be fetched or embedded
        """
        try:
            return await self.cache.get_or_build(
                owner_id, lambda: self.processor.build_store(owner_id)
            )
        except Exception as e:
            logger.error(f"[RAG] Failed to build vector store for owner {owner_id}: {e}")
            raise RetrievalError(f"Failed to build vector store: {e}") from e

    async def retrieve(self, owner_id: str, query: str) -> list[Passage]:
        """Top-k passages for the query from the owner's notes.

        Raises:
            RetrievalError: If the store can't be built or the query can't be embedded
        """
        store = await self.get_store(owner_id)

        try:
            passages = await store.similarity_search(query, self.top_k)
        except Exception as e:
            raise RetrievalError(f"Similarity search failed: {e}") from e

        logger.info(f"[RAG] Retrieved {len(passages)} passages for owner {owner_id}")
        return passages

    @staticmethod
    def format_context(passages: list[Passage]) -> str:
        """Join passage texts with blank lines."""
        return "\n\n".join(p.text for p in passages)

    def build_messages(self, query: str, passages: list[Passage]) -> list[ChatMessage]:
        """System message carrying the grounding context, then the literal query."""
        context = self.format_context(passages)
        logger.debug(f"[RAG] Context length: {len(context)}")
        return [
            ChatMessage(role="system", content=SYSTEM_PROMPT_TEMPLATE.format(context=context)),
            ChatMessage(role="user", content=query),
        ]

    async def answer(self, owner_id: str, query: str) -> str:
        """Answer a question from the owner's notes in one generation call.

        Raises:
            RetrievalError: If retrieval fails
            GenerationError: If the generation call fails
        """
        start_time = time.perf_counter()

        try:
            passages = await self.retrieve(owner_id, query)
        except RetrievalError:
            QUERY_ERRORS.labels(mode="buffered", stage="retrieval").inc()
            raise

        messages = self.build_messages(query, passages)

        try:
            content = await self.generator.complete(messages)
        except GenerationError:
            QUERY_ERRORS.labels(mode="buffered", stage="generation").inc()
            raise
        except Exception as e:
            QUERY_ERRORS.labels(mode="buffered", stage="generation").inc()
            raise GenerationError(f"Generation failed: {e}") from e

        QUERY_LATENCY.labels(mode="buffered").observe(time.perf_counter() - start_time)
        return content

    async def stream_answer(self, owner_id: str, query: str) -> AsyncIterator[str]:
        """Answer a question as a stream of text fragments.

        Fragments are yielded in arrival order. Closing the iterator early
        releases the underlying generation stream.

        Raises:
            RetrievalError: If retrieval fails
            GenerationError: If the request fails or the stream breaks
        """
        start_time = time.perf_counter()

        try:
            passages = await self.retrieve(owner_id, query)
        except RetrievalError:
            QUERY_ERRORS.labels(mode="stream", stage="retrieval").inc()
            raise

        messages = self.build_messages(query, passages)

        stream = self.generator.stream(messages)
        try:
            async for fragment in stream:
                yield fragment
        except GenerationError:
            QUERY_ERRORS.labels(mode="stream", stage="generation").inc()
            raise
        except Exception as e:
            QUERY_ERRORS.labels(mode="stream", stage="generation").inc()
            raise GenerationError(f"Generation stream failed: {e}") from e
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        QUERY_LATENCY.labels(mode="stream").observe(time.perf_counter() - start_time)

    async def answer_stream(
        self,
        owner_id: str,
        query: str,
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> None:
        """Callback form of stream_answer.

        ``on_chunk`` fires per fragment, then exactly one of ``on_complete``
        or ``on_error``. If the surrounding task is cancelled no further
        callbacks fire. Callbacks may be plain or async functions.
        """
        stream = self.stream_answer(owner_id, query)
        try:
            try:
                async for fragment in stream:
                    await _call(on_chunk, fragment)
            except Exception as e:
                logger.error(f"[RAG] Streaming query failed for owner {owner_id}: {e}")
                await _call(on_error, e)
                return
        finally:
            await stream.aclose()

        await _call(on_complete)

    def invalidate(self, owner_id: str) -> bool:
        """Drop the owner's cached store, e.g. after one of their notes changes."""
        return self.cache.invalidate(owner_id)


# Singleton instance
_rag_service: RAGService | None = None


def get_rag_service() -> RAGService:
    """Get or create the global RAGService instance."""
    global _rag_service

    if _rag_service is None:
        from noterag.rag.corpus import get_document_source
        from noterag.rag.embedder import get_embedder
        from noterag.rag.generator import create_generation_provider
        from noterag.rag.processor import create_processor

        settings = get_settings()
        processor = create_processor(get_document_source(), get_embedder())
        _rag_service = RAGService(
            processor=processor,
            generator=create_generation_provider(),
            cache=StoreCache(),
            top_k=settings.retrieval_top_k,
        )

    return _rag_service


async def shutdown_rag_service() -> None:
    """Release the global RAGService and the HTTP clients behind it."""
    global _rag_service

    from noterag.rag.corpus import shutdown_document_source
    from noterag.rag.embedder import shutdown_embedder

    if _rag_service:
        await _rag_service.generator.aclose()
        _rag_service = None

    await shutdown_document_source()
    await shutdown_embedder()
