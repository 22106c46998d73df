"""Data schemas for RAG Store."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

DocumentType = Literal["txt", "md", "html", "pdf", "docx", "png", "jpeg", "webp", "gif"]
DatabaseType = Literal["vector", "graph"]
DuplicatePolicy = Literal["replace", "skip"]

ROOT_FOLDER = "/"
FOLDER_KEY = "folderPath"


class ChunkingOptions(BaseModel):
    """Chunk sizing in tokens plus the boundary strategy to use."""
    chunk_size: int = 500
    overlap: int = 50
    split_by_sentence: bool = False
    split_by_paragraph: bool = False


class ChunkMetadata(BaseModel):
    """Positional and provenance metadata attached to every chunk."""
    document_id: str
    document_name: str
    document_type: DocumentType
    index: int
    start_offset: int
    end_offset: int
    token_count: int


class DocumentChunk(BaseModel):
    """A contiguous slice of a document's text."""
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    metadata: ChunkMetadata


class VectorMetadata(BaseModel):
    """
    Metadata stored with each vector.

    ``folderPath`` is the one field the store relies on; every other key is
    caller-defined and kept as-is in the model's extra fields.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    folder_path: str = Field(default=ROOT_FOLDER, alias=FOLDER_KEY)

    def as_dict(self) -> Dict[str, Any]:
        """Plain mapping with the ``folderPath`` key spelled as stored."""
        return self.model_dump(by_alias=True)

    def get(self, key: str, default: Any = None) -> Any:
        if key == FOLDER_KEY:
            return self.folder_path
        return (self.model_extra or {}).get(key, default)


class VectorRecord(BaseModel):
    """One embedded unit stored in a database."""
    id: str
    values: List[float]
    metadata: VectorMetadata = Field(default_factory=VectorMetadata)
    updated_at: float = 0.0

    @property
    def folder_path(self) -> str:
        return self.metadata.folder_path


class SearchOptions(BaseModel):
    """Options accepted by global and folder-scoped search."""
    top_k: int = Field(default=5, ge=1)
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    include_vectors: bool = False
    filter: Optional[Dict[str, Any]] = None


class SearchResult(BaseModel):
    """Single ranked search hit."""
    id: str
    score: float = Field(description="Cosine similarity clamped to 0.0-1.0")
    metadata: Dict[str, Any]
    vector: Optional[List[float]] = None


class VectorError(BaseModel):
    """Why one record of a batch was rejected."""
    id: str
    error: str


class AddVectorsResult(BaseModel):
    added: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[VectorError] = Field(default_factory=list)


class DeleteResult(BaseModel):
    deleted_count: int = 0
    deleted_ids: List[str] = Field(default_factory=list)


class UpdateResult(BaseModel):
    updated: int = 0
    failed: int = 0
    errors: List[VectorError] = Field(default_factory=list)


class FolderStats(BaseModel):
    """Per-folder statistics; empty and unknown folders both report zero."""
    folder_path: str
    vector_count: int
    size_bytes: int = 0
    last_modified: Optional[float] = None


class FolderCount(BaseModel):
    path: str
    vector_count: int


class CollectionStats(BaseModel):
    vector_count: int
    dimensions: Optional[int]
    folder_count: int
    storage_size_bytes: int
    last_updated: Optional[float] = None


class DatabaseMetadata(BaseModel):
    """Registry entry for a named database."""
    database_name: str
    type: DatabaseType
    owner: str
    created_at: float
    last_accessed_at: float
    vector_count: int = 0
    storage_size_bytes: int = 0
    description: Optional[str] = None


class Manifest(BaseModel):
    """Snapshot manifest written next to a saved database."""
    snapshot_version: str
    database_name: str
    build_time: str
    faiss_metric: str = "cosine"
    dimensions: Optional[int]
    vector_count: int
    folder_paths: List[str] = Field(default_factory=list)


class IngestResult(BaseModel):
    """Outcome of ingesting one document."""
    document_id: str
    chunk_count: int
    added: int
    failed_chunks: List[str] = Field(default_factory=list)
