"""Text extraction from block-tree note content.

Notes are stored as a JSON list of blocks. Each block may carry a
``content`` list of inline nodes (text leaves look like
``{"type": "text", "text": "..."}``) and a ``children`` list of nested
blocks.
"""

import json
import logging
from collections.abc import Iterator
from typing import Any

from noterag.core.exceptions import ExtractionError

logger = logging.getLogger(__name__)

_EXHAUSTED = object()


class BlockTreeExtractor:
    """Extract plain text from serialized block-tree documents."""

    def extract(self, content: str) -> str:
        """Extract text from serialized content.

        Leaf text is concatenated depth-first, a node's inline ``content``
        before its block ``children``, with no separators.

        Raises:
            ExtractionError: If content is not valid JSON
        """
        try:
            tree = json.loads(content)
        except (TypeError, ValueError, RecursionError) as e:
            raise ExtractionError(f"Content is not valid JSON: {e}") from e

        return "".join(self._walk(tree))

    def extract_text(self, content: str) -> str:
        """Best-effort extraction: malformed content yields an empty string."""
        try:
            return self.extract(content)
        except ExtractionError as e:
            logger.warning(f"[Extractor] Skipping malformed content: {e}")
            return ""

    def _walk(self, tree: Any) -> Iterator[str]:
        # Explicit stack of (iterator, inline) frames; nesting depth is unbounded
        stack: list[tuple[Iterator[Any], bool]] = [(iter([tree]), False)]
        while stack:
            frame, inline = stack[-1]
            node = next(frame, _EXHAUSTED)
            if node is _EXHAUSTED:
                stack.pop()
                continue

            if isinstance(node, list):
                stack.append((iter(node), False))
                continue

            if not isinstance(node, dict):
                continue

            if inline and node.get("type") == "text" and node.get("text"):
                yield str(node["text"])
                continue

            # Pushed in reverse so inline content is visited before children
            children = node.get("children")
            if isinstance(children, list):
                stack.append((iter(children), False))
            content = node.get("content")
            if isinstance(content, list):
                stack.append((iter(content), True))


# Singleton instance
_extractor: BlockTreeExtractor | None = None


def get_extractor() -> BlockTreeExtractor:
    """Get or create the global BlockTreeExtractor instance."""
    global _extractor
    if _extractor is None:
        _extractor = BlockTreeExtractor()
    return _extractor
