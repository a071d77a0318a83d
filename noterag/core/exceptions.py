"""Exception hierarchy for the retrieval subsystem."""


class NoteRAGError(Exception):
    """Base class for all errors raised by noterag."""


class ExtractionError(NoteRAGError):
    """Raised when document content cannot be parsed."""


class EmbeddingProviderError(NoteRAGError):
    """Raised when the embedding provider call fails or returns a bad payload."""


class CorpusError(NoteRAGError):
    """Raised when the document corpus cannot be fetched."""


class RetrievalError(NoteRAGError):
    """Raised when the vector store cannot be built or queried."""


class GenerationError(NoteRAGError):
    """Raised when the generation provider call fails.

    Attributes:
        status_code: HTTP status returned by the provider, if any
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
