"""RAG Store - Document Chunking and Folder-Organized Vector Storage."""

from .cache import ExtractionCache
from .chunker import chunk_document, chunk_text
from .config import Settings, configure_logging, get_settings
from .errors import (
    ChunkingError,
    DatabaseExistsError,
    DatabaseNotFoundError,
    EmbeddingError,
    FolderPathError,
    InvalidDatabaseNameError,
    InvalidSearchOptionsError,
    InvalidVectorError,
    RagStoreError,
    SessionNotFoundError,
    SnapshotError,
    VectorNotFoundError,
)
from .folders import validate_folder_path
from .ingest import DocumentIngestor
from .registry import DatabaseMetadataService, DatabaseRegistry
from .schemas import (
    ChunkingOptions,
    DocumentChunk,
    FolderStats,
    IngestResult,
    SearchResult,
    VectorMetadata,
    VectorRecord,
)
from .store import VectorStore
from .utils import estimate_tokens

__version__ = "0.1.0"

__all__ = [
    "VectorStore",
    "DocumentIngestor",
    "DatabaseRegistry",
    "DatabaseMetadataService",
    "ExtractionCache",
    "chunk_text",
    "chunk_document",
    "estimate_tokens",
    "validate_folder_path",
    "Settings",
    "get_settings",
    "configure_logging",
    "ChunkingOptions",
    "DocumentChunk",
    "VectorMetadata",
    "VectorRecord",
    "SearchResult",
    "FolderStats",
    "IngestResult",
    "RagStoreError",
    "ChunkingError",
    "FolderPathError",
    "InvalidSearchOptionsError",
    "InvalidVectorError",
    "VectorNotFoundError",
    "SessionNotFoundError",
    "DatabaseExistsError",
    "DatabaseNotFoundError",
    "InvalidDatabaseNameError",
    "EmbeddingError",
    "SnapshotError",
]
