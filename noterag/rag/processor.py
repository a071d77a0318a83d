"""Document processor for RAG ingestion.

Turns an owner's notes into passages and loads them into a vector store.
"""

import logging
import time
from dataclasses import dataclass

from noterag.core.config import get_settings
from noterag.observability.metrics import STORE_BUILD_LATENCY, STORE_BUILDS
from noterag.rag.chunking import ChunkingStrategy, get_chunker
from noterag.rag.corpus import CorpusDocument, DocumentSource
from noterag.rag.embedder import Embedder
from noterag.rag.extractors import BlockTreeExtractor, get_extractor
from noterag.rag.vector_store import Passage, PassageMetadata, VectorStore

logger = logging.getLogger(__name__)


@dataclass
class ProcessingResult:
    """Summary of one store build."""

    owner_id: str
    document_count: int
    indexed_documents: int
    passage_count: int
    processing_time_ms: int = 0


class DocumentProcessor:
    """Builds vector stores from an owner's notes.

    Pipeline:
    1. Fetch the owner's documents
    2. Extract text from each document's block tree
    3. Split into chunks
    4. Embed and store
    """

    def __init__(
        self,
        source: DocumentSource,
        embedder: Embedder,
        chunker: ChunkingStrategy | None = None,
        extractor: BlockTreeExtractor | None = None,
    ):
        self.source = source
        self.embedder = embedder
        self.chunker = chunker or get_chunker()
        self.extractor = extractor or get_extractor()
        self.last_result: ProcessingResult | None = None

    def split_documents(self, documents: list[CorpusDocument]) -> list[Passage]:
        """Extract and chunk documents into passages, in document order.

        Documents without content, or whose content extracts to nothing,
        contribute no passages.
        """
        passages = []

        for doc in documents:
            if doc.content is None:
                logger.debug(f"[Processor] Document has no content, skipping: {doc.title}")
                continue

            text = self.extractor.extract_text(doc.content)
            if not text:
                logger.debug(f"[Processor] Extracted text is empty, skipping: {doc.title}")
                continue

            metadata = PassageMetadata(document_id=doc.id, title=doc.title)
            chunks = self.chunker.chunk(text)
            passages.extend(Passage(text=c.text, metadata=metadata) for c in chunks)
            logger.debug(
                f"[Processor] Document '{doc.title}': {len(text)} chars -> {len(chunks)} chunks"
            )

        return passages

    async def build_store(self, owner_id: str) -> VectorStore:
        """Fetch, extract, chunk and embed one owner's notes.

        Raises:
            CorpusError: If the documents cannot be fetched
            EmbeddingProviderError: If any passage fails to embed
        """
        start_time = time.perf_counter()
        logger.info(f"[Processor] Building vector store for owner {owner_id}")

        try:
            documents = await self.source.get_documents(owner_id)
            passages = self.split_documents(documents)

            store = VectorStore(self.embedder)
            await store.add_all(passages)
        except Exception:
            STORE_BUILDS.labels(status="error").inc()
            raise

        elapsed = time.perf_counter() - start_time
        STORE_BUILDS.labels(status="ok").inc()
        STORE_BUILD_LATENCY.observe(elapsed)

        self.last_result = ProcessingResult(
            owner_id=owner_id,
            document_count=len(documents),
            indexed_documents=len({p.metadata.document_id for p in passages}),
            passage_count=len(passages),
            processing_time_ms=int(elapsed * 1000),
        )
        logger.info(
            f"[Processor] Store built in {self.last_result.processing_time_ms}ms: "
            f"{len(documents)} documents, {len(passages)} passages"
        )
        return store


def create_processor(source: DocumentSource, embedder: Embedder) -> DocumentProcessor:
    """Create a DocumentProcessor with the configured chunking strategy."""
    settings = get_settings()
    chunker = get_chunker(
        strategy=settings.chunking_strategy,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )
    return DocumentProcessor(source, embedder, chunker=chunker)
