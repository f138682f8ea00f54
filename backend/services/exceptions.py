"""Exceptions for the knowledge base pipeline."""


class KnowledgeBaseError(Exception):
    """Base exception for knowledge base errors."""

    def __init__(self, message: str, stage: str):
        self.message = message
        self.stage = stage
        super().__init__(message)


class ConfigurationError(KnowledgeBaseError):
    """Invalid or unsupported configuration."""

    def __init__(self, message: str):
        super().__init__(message, "configuration")


class ChunkingError(KnowledgeBaseError):
    """Chunker called with arguments it cannot honour."""

    def __init__(self, message: str):
        super().__init__(message, "chunking")


class EmbeddingError(KnowledgeBaseError):
    """Error while producing an embedding."""

    def __init__(self, message: str):
        super().__init__(message, "embedding")


class EmbeddingDimensionError(EmbeddingError):
    """Two vectors that should share a dimensionality do not."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")


class DocumentNotFoundError(KnowledgeBaseError):
    """No training document with the given id."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Training document '{document_id}' not found", "storage")


class DocumentProcessingError(KnowledgeBaseError):
    """Indexing a document failed; the document is now marked failed."""

    def __init__(self, document_id: str, message: str):
        self.document_id = document_id
        super().__init__(f"Processing document '{document_id}' failed: {message}", "indexing")
