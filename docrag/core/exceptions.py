"""Custom exceptions for the application."""


class DocRAGError(Exception):
    """Base class for all knowledge base errors."""

    pass


class NotFoundError(DocRAGError):
    """Raised when a document or session is absent or not owned by the caller."""

    pass


class AlreadyIndexingError(DocRAGError):
    """Raised when an index operation is already in flight for a document."""

    pass


class EmptyContentError(DocRAGError):
    """Raised when a document produces no chunks to index."""

    pass


class ProviderUnavailableError(DocRAGError):
    """Raised when an external provider call fails or times out."""

    pass


class VectorDBError(ProviderUnavailableError):
    """Raised when vector database operations fail."""

    pass


class EmbeddingError(ProviderUnavailableError):
    """Raised when embedding generation fails."""

    pass


class EmbeddingUnavailableError(EmbeddingError):
    """Raised on quota exhaustion, timeouts or connection failures."""

    pass


class EmbeddingInputError(EmbeddingError):
    """Raised when the provider rejects the input text."""

    pass


class LLMError(ProviderUnavailableError):
    """Raised when LLM operations fail."""

    pass


class RetrievalFailedError(DocRAGError):
    """Raised when answering a query fails after the user turn was recorded."""

    pass


class InconsistentStateError(DocRAGError):
    """Raised when relational records and the vector index disagree."""

    pass


class DatabaseError(DocRAGError):
    """Raised when database operations fail."""

    pass
