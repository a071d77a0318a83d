"""RAG (Retrieval-Augmented Generation) package.

Components:
- BlockTreeExtractor: plain text from block-tree note content
- Chunker: overlapping fixed-size windows
- Embedder: embedding client with bounded-concurrency batches
- VectorStore: in-memory cosine similarity search
- StoreCache: per-owner store cache
- DocumentProcessor: notes -> passages -> vector store
- RAGService: retrieve-then-generate, buffered or streamed
"""

from noterag.rag.chunking import Chunk, get_chunker
from noterag.rag.corpus import CorpusDocument, DocumentSource, get_document_source
from noterag.rag.embedder import Embedder, EmbeddingProvider, get_embedder
from noterag.rag.extractors import BlockTreeExtractor, get_extractor
from noterag.rag.generator import ChatMessage, GenerationProvider
from noterag.rag.processor import DocumentProcessor, ProcessingResult
from noterag.rag.retriever import RAGService, get_rag_service
from noterag.rag.store_cache import StoreCache
from noterag.rag.vector_store import Passage, PassageMetadata, VectorStore

__all__ = [
    "BlockTreeExtractor",
    "ChatMessage",
    "Chunk",
    "CorpusDocument",
    "DocumentProcessor",
    "DocumentSource",
    "Embedder",
    "EmbeddingProvider",
    "GenerationProvider",
    "Passage",
    "PassageMetadata",
    "ProcessingResult",
    "RAGService",
    "StoreCache",
    "VectorStore",
    "get_chunker",
    "get_document_source",
    "get_embedder",
    "get_extractor",
    "get_rag_service",
]
