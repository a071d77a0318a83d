"""Document chunking strategies.

Splits extracted note text into overlapping windows suitable for
embedding and retrieval. Chunk text is never stripped, so the
non-overlapping spans of consecutive chunks rebuild the input exactly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200
DEFAULT_SEPARATORS = ("\n\n", "\n", " ")


@dataclass
class Chunk:
    """A slice of document text ready for embedding."""

    index: int
    text: str
    start_char: int
    end_char: int
    metadata: dict = field(default_factory=dict)


class ChunkingStrategy(ABC):
    """Base class for chunking strategies."""

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    ):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError(
                f"chunk_overlap must be in [0, chunk_size), got {chunk_overlap} "
                f"for chunk_size {chunk_size}"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def chunk(self, text: str, metadata: dict | None = None) -> list[Chunk]:
        """Split text into overlapping chunks."""
        if not text or not text.strip():
            return []

        chunks = []
        start = 0

        while True:
            end = min(start + self.chunk_size, len(text))
            if end < len(text):
                end = self._window_end(text, start, end)

            chunks.append(
                Chunk(
                    index=len(chunks),
                    text=text[start:end],
                    start_char=start,
                    end_char=end,
                    metadata=dict(metadata or {}),
                )
            )

            if end >= len(text):
                break

            # end > start + overlap always holds, so this moves forward
            start = end - self.chunk_overlap

        return chunks

    @abstractmethod
    def _window_end(self, text: str, start: int, end: int) -> int:
        """Pick where a window that doesn't reach the end of text should stop."""


class FixedSizeChunker(ChunkingStrategy):
    """Plain character windows of exactly chunk_size."""

    def _window_end(self, text: str, start: int, end: int) -> int:
        return end


class RecursiveChunker(ChunkingStrategy):
    """Character windows that prefer to end on natural separators.

    Tries paragraph breaks first, then line breaks, then spaces. A
    separator is only used when the shortened window is still longer
    than the overlap; otherwise the window is cut at chunk_size.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        separators: tuple[str, ...] = DEFAULT_SEPARATORS,
    ):
        super().__init__(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
        self.separators = tuple(s for s in separators if s)

    def _window_end(self, text: str, start: int, end: int) -> int:
        lowest = start + self.chunk_overlap
        for sep in self.separators:
            pos = text.rfind(sep, lowest, end)
            if pos != -1:
                return pos + len(sep)
        return end


def get_chunker(strategy: str = "recursive", **kwargs) -> ChunkingStrategy:
    """Get a chunking strategy by name.

    Args:
        strategy: "recursive" or "fixed"
        **kwargs: chunk_size / chunk_overlap (and separators for "recursive")

    Returns:
        Configured chunking strategy
    """
    if strategy == "recursive":
        return RecursiveChunker(**kwargs)
    if strategy == "fixed":
        return FixedSizeChunker(**kwargs)
    raise ValueError(f"Unknown chunking strategy: {strategy}")


__all__ = [
    "DEFAULT_CHUNK_OVERLAP",
    "DEFAULT_CHUNK_SIZE",
    "Chunk",
    "ChunkingStrategy",
    "FixedSizeChunker",
    "RecursiveChunker",
    "get_chunker",
]
