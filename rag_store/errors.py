"""Exceptions raised by RAG Store."""


class RagStoreError(Exception):
    """Base class for all RAG Store errors."""
    pass


class ChunkingError(RagStoreError, ValueError):
    """Raised when chunking options or input text are invalid."""
    pass


class FolderPathError(RagStoreError, ValueError):
    """Raised when a folder path violates the path grammar."""
    pass


class InvalidVectorError(RagStoreError, ValueError):
    """Raised when a vector record or query vector is malformed."""
    pass


class InvalidSearchOptionsError(RagStoreError, ValueError):
    """Raised when top_k, threshold or filter options are out of range."""
    pass


class VectorNotFoundError(RagStoreError, LookupError):
    """Raised when a referenced vector id does not exist."""

    def __init__(self, vector_id: str):
        super().__init__(f"Vector not found: {vector_id}")
        self.vector_id = vector_id


class SessionNotFoundError(RagStoreError, LookupError):
    """Raised when neither a session nor a database matches a reference."""

    def __init__(self, ref: str):
        super().__init__(f"Session not found: {ref}")
        self.ref = ref


class DatabaseExistsError(RagStoreError):
    def __init__(self, name: str):
        super().__init__(f"Database already exists: {name}")
        self.name = name


class DatabaseNotFoundError(RagStoreError, LookupError):
    def __init__(self, name: str):
        super().__init__(f"Database not found: {name}")
        self.name = name


class InvalidDatabaseNameError(RagStoreError, ValueError):
    pass


class EmbeddingError(RagStoreError, RuntimeError):
    """Raised when the embedding provider keeps failing after retries."""
    pass


class SnapshotError(RagStoreError):
    """Raised when a saved snapshot cannot be parsed or is inconsistent."""
    pass
