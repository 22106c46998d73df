"""Turn document text into embedded, folder-placed vectors."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple

from langchain_core.embeddings import Embeddings
from tqdm import tqdm

from .cache import ExtractionCache
from .chunker import chunk_text
from .config import get_settings
from .errors import EmbeddingError
from .folders import validate_folder_path
from .schemas import (
    ROOT_FOLDER,
    ChunkingOptions,
    DeleteResult,
    DocumentChunk,
    DocumentType,
    IngestResult,
)
from .store import VectorStore
from .utils import iter_batches

logger = logging.getLogger(__name__)


def _embed_documents_with_retry(embeddings: Embeddings, texts: List[str], max_retries: int = 3) -> List[List[float]]:
    """Embed documents with exponential backoff retry."""
    delay = 0.5
    last_exc: Optional[BaseException] = None

    for attempt in range(max_retries + 1):
        try:
            return embeddings.embed_documents(texts)
        except Exception as exc:
            last_exc = exc
            if attempt >= max_retries:
                break
            logger.warning("Embedding attempt %d failed, retrying in %.1fs: %s", attempt + 1, delay, exc)
            time.sleep(delay)
            delay *= 2

    raise EmbeddingError(f"Embedding failed after retries: {last_exc}") from last_exc


def chunk_metadata(chunk: DocumentChunk, folder_path: str) -> Dict[str, Any]:
    """Vector metadata stored for one chunk."""
    meta = chunk.metadata
    return {
        "folderPath": folder_path,
        "documentId": meta.document_id,
        "documentName": meta.document_name,
        "documentType": meta.document_type,
        "chunkIndex": meta.index,
        "startOffset": meta.start_offset,
        "endOffset": meta.end_offset,
        "tokenCount": meta.token_count,
        "text": chunk.text,
    }


class DocumentIngestor:
    """
    Chunk, embed and store documents in a ``VectorStore``.

    Embedding goes through any LangChain ``Embeddings`` implementation in
    batches; a batch that keeps failing is retried chunk by chunk so one bad
    chunk does not sink the document.
    """

    def __init__(
        self,
        store: VectorStore,
        embeddings: Embeddings,
        cache: Optional[ExtractionCache] = None,
        batch_size: Optional[int] = None,
        max_retries: Optional[int] = None,
        show_progress: bool = False,
    ) -> None:
        settings = get_settings()
        self.store = store
        self.embeddings = embeddings
        self.cache = cache if cache is not None else ExtractionCache(settings.extraction_cache_size)
        self.batch_size = batch_size or settings.embed_batch_size
        self.max_retries = settings.embed_max_retries if max_retries is None else max_retries
        self.show_progress = show_progress

    async def ingest_text(
        self,
        ref: str,
        text: str,
        document_id: str,
        document_name: str,
        document_type: DocumentType = "txt",
        folder_path: str = ROOT_FOLDER,
        options: Optional[ChunkingOptions] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> IngestResult:
        """
        Chunk a document, embed its chunks and store them as vectors.

        Re-ingesting a document ID replaces its earlier chunks; chunks the new
        version no longer produces are deleted once the new ones are stored.

        Args:
            ref: Session ID or database name
            text: Extracted plain text of the document
            document_id: Document ID; chunk IDs derive from it
            document_name: Human-readable name stored with each chunk
            document_type: Source document type
            folder_path: Folder the chunks are placed in
            options: Chunking options; defaults come from settings
            metadata: Extra metadata copied onto every chunk

        Returns:
            Chunk count, stored vector count and IDs of chunks that failed to embed

        Raises:
            FolderPathError: If ``folder_path`` is malformed
            ChunkingError: If the text is empty or options are invalid
            EmbeddingError: If no chunk could be embedded
        """
        validate_folder_path(folder_path)
        if options is None:
            settings = get_settings()
            options = ChunkingOptions(chunk_size=settings.chunk_size, overlap=settings.chunk_overlap)

        chunks = chunk_text(text, document_id, document_name, document_type, options)
        embedded, failed = await asyncio.to_thread(self._embed_chunks, chunks)
        if not embedded:
            raise EmbeddingError(f"Embedding returned no vectors for document {document_id}")

        extra = dict(metadata or {})
        records = [
            {
                "id": chunk.id,
                "values": vector,
                "metadata": {**extra, **chunk_metadata(chunk, folder_path)},
            }
            for chunk, vector in embedded
        ]
        result = await self.store.add_vectors(ref, records)
        # Chunks of an earlier version of this document that were not rewritten above.
        stale = await self.store.delete_by_metadata(
            ref,
            {
                "documentId": document_id,
                "chunkIndex": {"$nin": [chunk.metadata.index for chunk, _ in embedded]},
            },
        )
        self.cache.put(document_id, text)

        logger.info(
            "Ingested %s into %s: chunks=%d, added=%d, failed=%d, stale_removed=%d",
            document_id,
            folder_path,
            len(chunks),
            result.added,
            len(failed),
            stale.deleted_count,
        )
        return IngestResult(
            document_id=document_id,
            chunk_count=len(chunks),
            added=result.added,
            failed_chunks=failed,
        )

    def _embed_chunks(self, chunks: List[DocumentChunk]) -> Tuple[List[Tuple[DocumentChunk, List[float]]], List[str]]:
        embedded: List[Tuple[DocumentChunk, List[float]]] = []
        failed: List[str] = []

        with tqdm(total=len(chunks), desc="Embedding chunks", disable=not self.show_progress) as progress:
            for batch in iter_batches(chunks, self.batch_size):
                texts = [chunk.text for chunk in batch]
                try:
                    vectors = _embed_documents_with_retry(self.embeddings, texts, self.max_retries)
                except EmbeddingError as exc:
                    logger.warning("Embedding batch failed; fallback to per-chunk: %s", exc)
                    for chunk in batch:
                        try:
                            vector = _embed_documents_with_retry(self.embeddings, [chunk.text], self.max_retries)[0]
                        except EmbeddingError as inner_exc:
                            logger.warning("Embedding failed; skipped chunk %s: %s", chunk.id, inner_exc)
                            failed.append(chunk.id)
                        else:
                            embedded.append((chunk, vector))
                        progress.update(1)
                    continue

                if len(vectors) != len(batch):
                    raise EmbeddingError("Embedding batch returned mismatched vector count.")
                embedded.extend(zip(batch, vectors))
                progress.update(len(batch))

        return embedded, failed

    def embed_query(self, query: str) -> List[float]:
        """Embed a search query with the same model used for documents."""
        return self.embeddings.embed_query(query)

    def get_document_text(self, document_id: str) -> Optional[str]:
        """Cached full text of a recently ingested document, if still cached."""
        return self.cache.get(document_id)

    async def remove_document(self, ref: str, document_id: str) -> DeleteResult:
        """Delete every chunk vector of a document and drop its cached text."""
        result = await self.store.delete_by_metadata(ref, {"documentId": document_id})
        self.cache.invalidate(document_id)
        logger.info("Removed %s: deleted=%d", document_id, result.deleted_count)
        return result
