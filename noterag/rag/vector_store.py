"""In-memory vector store.

Holds the embedded passages of one owner's notes and answers cosine
similarity queries by brute force.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from noterag.rag.embedder import Embedder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PassageMetadata:
    """Where a passage came from."""

    document_id: str
    title: str


@dataclass(frozen=True)
class Passage:
    """A chunk of note text paired with its source document."""

    text: str
    metadata: PassageMetadata


@dataclass(frozen=True)
class VectorEntry:
    """A passage and its embedding."""

    passage: Passage
    embedding: np.ndarray = field(repr=False, compare=False)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity in float64; 0.0 if either vector has zero norm."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


class VectorStore:
    """Append-only store of embedded passages for one owner.

    All entries share a single embedding dimension. There is no removal or
    update-in-place; a stale store is replaced by rebuilding it.
    """

    def __init__(self, embedder: Embedder):
        self.embedder = embedder
        self._entries: list[VectorEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[VectorEntry, ...]:
        return tuple(self._entries)

    @property
    def dimension(self) -> int | None:
        if not self._entries:
            return None
        return self._entries[0].embedding.shape[0]

    async def add_all(self, passages: list[Passage]) -> int:
        """Embed passages and append them in order.

        Returns:
            Number of entries added
        """
        if not passages:
            return 0

        embeddings = await self.embedder.embed_texts([p.text for p in passages])

        new_entries = []
        expected = self.dimension
        for passage, embedding in zip(passages, embeddings, strict=True):
            vector = np.asarray(embedding, dtype=np.float64)
            if expected is None and vector.ndim == 1:
                expected = vector.shape[0]
            if vector.ndim != 1 or vector.shape[0] != expected:
                raise ValueError(
                    f"Embedding dimension mismatch: expected {expected}, got {vector.shape}"
                )
            new_entries.append(VectorEntry(passage=passage, embedding=vector))

        # Only grow the store once the whole batch is valid
        self._entries.extend(new_entries)
        logger.info(f"[VectorStore] Added {len(new_entries)} entries (total {len(self._entries)})")
        return len(new_entries)

    async def similarity_search_with_scores(
        self,
        query: str,
        k: int = 4,
    ) -> list[tuple[Passage, float]]:
        """Rank passages by cosine similarity to the query.

        Args:
            query: Query text
            k: Maximum number of results

        Returns:
            Up to k (passage, score) pairs, best first. Equal scores keep
            insertion order.
        """
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")

        if not self._entries:
            logger.debug("[VectorStore] Store is empty, skipping query embedding")
            return []

        query_vector = np.asarray(await self.embedder.embed_query(query), dtype=np.float64)

        if query_vector.shape != (self.dimension,):
            raise ValueError(
                f"Query dimension {query_vector.shape} does not match store dimension {self.dimension}"
            )

        scores = np.array(
            [cosine_similarity(query_vector, e.embedding) for e in self._entries],
            dtype=np.float64,
        )

        # Stable sort on negated scores keeps insertion order among ties
        order = np.argsort(-scores, kind="stable")[:k]

        results = [(self._entries[i].passage, float(scores[i])) for i in order]
        logger.debug(
            f"[VectorStore] Top {len(results)} scores: {[round(s, 4) for _, s in results]}"
        )
        return results

    async def similarity_search(self, query: str, k: int = 4) -> list[Passage]:
        """Return up to k passages most similar to the query."""
        return [p for p, _ in await self.similarity_search_with_scores(query, k)]
