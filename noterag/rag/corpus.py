"""Document corpus sources.

The notes themselves live in the application's document backend; the
retrieval pipeline only needs, per owner, each note's id, title and
serialized block-tree content.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from noterag.core.config import get_settings
from noterag.core.exceptions import CorpusError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CorpusDocument:
    """One note as seen by the retrieval pipeline."""

    id: str
    title: str
    content: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "CorpusDocument":
        """Build from a backend record (accepts ``_id`` as the id key)."""
        doc_id = data.get("id", data.get("_id"))
        if doc_id is None:
            raise CorpusError("Document record has no id")
        content = data.get("content")
        return cls(
            id=str(doc_id),
            title=str(data.get("title") or ""),
            content=content if isinstance(content, str) else None,
        )


class DocumentSource(ABC):
    """Supplies the notes belonging to an owner."""

    @abstractmethod
    async def get_documents(self, owner_id: str) -> list[CorpusDocument]:
        """Return all of the owner's notes that should be searchable.

        Raises:
            CorpusError: If the documents cannot be fetched
        """

    async def aclose(self) -> None:
        """Release any connections held by the source."""


class InMemoryDocumentSource(DocumentSource):
    """Document source backed by a dict, for local runs and tests."""

    def __init__(self, documents: dict[str, list[CorpusDocument]] | None = None):
        self.documents = documents or {}

    def put(self, owner_id: str, document: CorpusDocument) -> None:
        """Add or replace a document for an owner."""
        docs = [d for d in self.documents.get(owner_id, []) if d.id != document.id]
        docs.append(document)
        self.documents[owner_id] = docs

    async def get_documents(self, owner_id: str) -> list[CorpusDocument]:
        return list(self.documents.get(owner_id, []))


class HttpDocumentSource(DocumentSource):
    """Fetches notes from the document backend over HTTP.

    ``GET {base_url}/users/{owner_id}/documents`` must return a JSON list of
    ``{"id" | "_id", "title", "content"?}`` records.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str, api_key: str | None = None):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    async def aclose(self) -> None:
        await self.client.aclose()

    async def get_documents(self, owner_id: str) -> list[CorpusDocument]:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        url = f"{self.base_url}/users/{owner_id}/documents"

        try:
            response = await self.client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise CorpusError(f"Document request failed: {e}") from e

        if not response.is_success:
            raise CorpusError(
                f"Failed to fetch documents: {response.status_code} {response.reason_phrase}"
            )

        try:
            records = response.json()
        except ValueError as e:
            raise CorpusError(f"Malformed document response: {e}") from e

        if not isinstance(records, list):
            raise CorpusError("Malformed document response: expected a list")

        documents = [CorpusDocument.from_dict(r) for r in records if isinstance(r, dict)]
        logger.info(f"[Corpus] Fetched {len(documents)} documents for owner {owner_id}")
        return documents


# Singleton instance
_document_source: DocumentSource | None = None


def get_document_source() -> DocumentSource:
    """Get or create the global DocumentSource instance."""
    global _document_source

    if _document_source is None:
        settings = get_settings()
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout_seconds, connect=30.0)
        )
        _document_source = HttpDocumentSource(
            client, settings.corpus_url, api_key=settings.corpus_api_key
        )

    return _document_source


async def shutdown_document_source() -> None:
    """Close the global DocumentSource."""
    global _document_source
    if _document_source:
        await _document_source.aclose()
        _document_source = None
