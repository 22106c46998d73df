"""Folder-organized in-memory vector store.

Vectors live in named databases. Each vector carries a ``folderPath`` in its
metadata; folders are derived from those values, never stored on their own.
Sessions are short handles onto a database so callers can address it either
by session ID or by database name.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
import uuid
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from pydantic import ValidationError

from .config import get_settings
from .errors import (
    DatabaseExistsError,
    DatabaseNotFoundError,
    InvalidDatabaseNameError,
    InvalidSearchOptionsError,
    InvalidVectorError,
    SessionNotFoundError,
    VectorNotFoundError,
)
from .filters import FilterError, matches_filter
from .folders import resolve_folder_path, validate_folder_path
from .persistence import read_snapshot, write_snapshot
from .schemas import (
    FOLDER_KEY,
    AddVectorsResult,
    CollectionStats,
    DeleteResult,
    DuplicatePolicy,
    FolderCount,
    FolderStats,
    Manifest,
    SearchOptions,
    SearchResult,
    UpdateResult,
    VectorError,
    VectorMetadata,
    VectorRecord,
)
from .similarity import cosine_top_k, normalized_matrix
from .utils import json_size

logger = logging.getLogger(__name__)

RESERVED_METADATA_FIELDS = frozenset({"id", "values", "vector"})
BYTES_PER_VALUE = 4

RecordInput = Union[VectorRecord, Mapping]


class _Collection:
    """Records of one database plus a lazily rebuilt search matrix."""

    def __init__(self, name: str, dimensions: Optional[int]) -> None:
        self.name = name
        self.dimensions = dimensions
        self.records: Dict[str, VectorRecord] = {}
        self.lock = asyncio.Lock()
        self.created_at = time.time()
        self.updated_at: Optional[float] = None
        self._snapshot: Optional[Tuple[List[VectorRecord], np.ndarray]] = None

    def touch(self) -> None:
        self.updated_at = time.time()
        self._snapshot = None

    def snapshot(self) -> Tuple[List[VectorRecord], np.ndarray]:
        if self._snapshot is None:
            records = list(self.records.values())
            matrix = normalized_matrix([record.values for record in records], self.dimensions)
            self._snapshot = (records, matrix)
        return self._snapshot

    def in_folder(self, folder_path: str) -> List[VectorRecord]:
        return [record for record in self.records.values() if record.folder_path == folder_path]


def _with_folder(record: VectorRecord, folder_path: str, now: float) -> VectorRecord:
    """Copy of record with only its folder (and timestamp) changed."""
    metadata = VectorMetadata(**{**record.metadata.as_dict(), FOLDER_KEY: folder_path})
    return record.model_copy(update={"metadata": metadata, "updated_at": now})


class VectorStore:
    """
    Named vector databases with folder-aware listing, search and moves.

    All public operations are coroutines. Writers serialize on a per-database
    lock and replace whole records, so concurrent searches only ever see a
    record before or after a change.
    """

    def __init__(
        self,
        dimensions: Optional[int] = None,
        max_metadata_bytes: Optional[int] = None,
        registry=None,
        owner: str = "",
    ) -> None:
        """
        Args:
            dimensions: Dimensionality enforced on new databases; 0 lets the
                first inserted vector decide. Defaults to settings.
            max_metadata_bytes: Limit on JSON-encoded metadata per vector
            registry: Optional ``DatabaseRegistry`` kept in sync with this store
            owner: Owner recorded for databases registered through this store
        """
        settings = get_settings()
        if dimensions is None:
            dimensions = settings.vector_dimensions
        self.dimensions = dimensions or None
        self.max_metadata_bytes = max_metadata_bytes or settings.max_metadata_bytes
        self.registry = registry
        self.owner = owner
        self._collections: Dict[str, _Collection] = {}
        self._sessions: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Databases and sessions
    # ------------------------------------------------------------------

    async def create_database(self, database_name: str, dimensions: Optional[int] = None) -> None:
        """Create an empty database; raises if the name is taken."""
        name = self._check_name(database_name)
        if name in self._collections:
            raise DatabaseExistsError(name)
        self._collections[name] = _Collection(name, dimensions or self.dimensions)
        if self.registry is not None and not self.registry.exists(name):
            self.registry.register(name, "vector", self.owner)
        logger.info("Created vector database %s", name)

    async def create_session(self, database_name: str) -> str:
        """Open a session on a database, creating the database if needed."""
        name = self._check_name(database_name)
        if name not in self._collections:
            await self.create_database(name)
        session_id = str(uuid.uuid4())
        self._sessions[session_id] = name
        logger.debug("Opened session %s on %s", session_id, name)
        return session_id

    async def close_session(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise SessionNotFoundError(session_id)

    async def destroy_all_sessions(self) -> None:
        self._sessions.clear()

    async def delete_database(self, database_name: str) -> None:
        """Drop a database, its vectors and every session open on it."""
        if database_name not in self._collections:
            raise DatabaseNotFoundError(database_name)
        del self._collections[database_name]
        self._sessions = {sid: name for sid, name in self._sessions.items() if name != database_name}
        if self.registry is not None and self.registry.exists(database_name):
            self.registry.unregister(database_name)
        logger.info("Deleted vector database %s", database_name)

    async def list_databases(self) -> List[str]:
        return sorted(self._collections)

    def database_for(self, ref: str) -> str:
        """Database name behind a session ID or database name."""
        return self._collection(ref).name

    # ------------------------------------------------------------------
    # Insertion
    # ------------------------------------------------------------------

    async def add_vectors(
        self,
        ref: str,
        records: Sequence[RecordInput],
        handle_duplicates: DuplicatePolicy = "replace",
    ) -> AddVectorsResult:
        """
        Insert or upsert vectors.

        Every folder path in the batch is validated before anything is stored;
        a single bad path fails the whole call. Records whose dimensionality
        does not match the database are reported in ``errors`` while the rest
        are stored, unless no record at all is usable.

        Args:
            ref: Session ID or database name
            records: ``VectorRecord`` objects or mappings with ``id``,
                ``values`` and optional ``metadata``
            handle_duplicates: ``replace`` overwrites an existing ID,
                ``skip`` keeps the first stored version

        Returns:
            Counts of added, failed and skipped records with per-record errors

        Raises:
            FolderPathError: If any record has a malformed ``folderPath``
            InvalidVectorError: If a record is structurally invalid or every
                record has the wrong dimensionality
        """
        if handle_duplicates not in ("replace", "skip"):
            raise ValueError(f"Unknown duplicate policy: {handle_duplicates}")

        collection = self._collection(ref)
        result = AddVectorsResult()
        if not records:
            return result

        parsed = [self._parse_record(record) for record in records]

        async with collection.lock:
            dimensions = collection.dimensions or len(parsed[0][1])
            accepted: List[Tuple[str, List[float], Dict[str, Any]]] = []
            for vector_id, values, metadata in parsed:
                if len(values) != dimensions:
                    result.errors.append(
                        VectorError(
                            id=vector_id,
                            error=(
                                f'Invalid vector dimensions for vector "{vector_id}": '
                                f"expected {dimensions}, got {len(values)}"
                            ),
                        )
                    )
                    continue
                accepted.append((vector_id, values, metadata))

            result.failed = len(result.errors)
            if not accepted:
                raise InvalidVectorError(result.errors[0].error)

            collection.dimensions = dimensions
            now = time.time()
            for vector_id, values, metadata in accepted:
                if handle_duplicates == "skip" and vector_id in collection.records:
                    result.skipped += 1
                    continue
                collection.records[vector_id] = VectorRecord(
                    id=vector_id,
                    values=values,
                    metadata=VectorMetadata(**metadata),
                    updated_at=now,
                )
                result.added += 1
            collection.touch()

        self._sync_registry(collection)
        logger.info(
            "Stored vectors in %s: added=%d, failed=%d, skipped=%d",
            collection.name,
            result.added,
            result.failed,
            result.skipped,
        )
        return result

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        ref: str,
        query_vector: Sequence[float],
        top_k: Optional[int] = None,
        *,
        threshold: Optional[float] = None,
        include_vectors: bool = False,
        filter: Optional[Mapping[str, Any]] = None,
    ) -> List[SearchResult]:
        """Top-K cosine search across the whole database."""
        collection = self._collection(ref)
        options = self._search_options(top_k, threshold, include_vectors, filter)
        return self._search(collection, query_vector, options, None)

    async def search_in_folder(
        self,
        ref: str,
        folder_path: str,
        query_vector: Sequence[float],
        top_k: Optional[int] = None,
        *,
        threshold: Optional[float] = None,
        include_vectors: bool = False,
        filter: Optional[Mapping[str, Any]] = None,
    ) -> List[SearchResult]:
        """Top-K cosine search restricted to vectors in exactly ``folder_path``."""
        validate_folder_path(folder_path)
        collection = self._collection(ref)
        options = self._search_options(top_k, threshold, include_vectors, filter)
        return self._search(
            collection,
            query_vector,
            options,
            lambda record: record.folder_path == folder_path,
        )

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    async def list_folders(self, ref: str) -> List[str]:
        """Distinct folder paths in use, sorted ascending."""
        collection = self._collection(ref)
        return sorted({record.folder_path for record in collection.records.values()})

    async def get_all_folders_with_counts(self, ref: str) -> List[FolderCount]:
        collection = self._collection(ref)
        counts: Dict[str, int] = {}
        for record in collection.records.values():
            counts[record.folder_path] = counts.get(record.folder_path, 0) + 1
        return [FolderCount(path=path, vector_count=counts[path]) for path in sorted(counts)]

    async def get_folder_statistics(self, ref: str, folder_path: str) -> FolderStats:
        """Count vectors whose folder is exactly ``folder_path``."""
        validate_folder_path(folder_path)
        collection = self._collection(ref)
        members = collection.in_folder(folder_path)
        return FolderStats(
            folder_path=folder_path,
            vector_count=len(members),
            size_bytes=len(members) * (collection.dimensions or 0) * BYTES_PER_VALUE,
            last_modified=max((record.updated_at for record in members), default=None),
        )

    async def move_to_folder(
        self,
        ref: str,
        vector_ids: Union[str, Sequence[str]],
        target_folder_path: str,
    ) -> int:
        """
        Move vectors into ``target_folder_path``.

        All IDs are checked before any vector moves; one unknown ID fails the
        call and leaves every folder untouched.

        Returns:
            Number of vectors whose folder actually changed

        Raises:
            FolderPathError: If the target path is malformed
            VectorNotFoundError: If any ID is unknown
        """
        validate_folder_path(target_folder_path)
        collection = self._collection(ref)
        if isinstance(vector_ids, str):
            vector_ids = [vector_ids]

        async with collection.lock:
            for vector_id in vector_ids:
                if vector_id not in collection.records:
                    raise VectorNotFoundError(vector_id)

            now = time.time()
            moved = 0
            for vector_id in vector_ids:
                record = collection.records[vector_id]
                if record.folder_path == target_folder_path:
                    continue
                collection.records[vector_id] = _with_folder(record, target_folder_path, now)
                moved += 1
            if moved:
                collection.touch()

        logger.info("Moved %d vector(s) in %s to %s", moved, collection.name, target_folder_path)
        return moved

    async def move_folder_contents(
        self,
        ref: str,
        source_folder_path: str,
        target_folder_path: str,
    ) -> int:
        """Move every vector in the source folder to the target folder."""
        validate_folder_path(source_folder_path)
        validate_folder_path(target_folder_path)
        collection = self._collection(ref)
        if source_folder_path == target_folder_path:
            return 0

        async with collection.lock:
            now = time.time()
            members = collection.in_folder(source_folder_path)
            for record in members:
                collection.records[record.id] = _with_folder(record, target_folder_path, now)
            if members:
                collection.touch()

        logger.info(
            "Moved %d vector(s) in %s from %s to %s",
            len(members),
            collection.name,
            source_folder_path,
            target_folder_path,
        )
        return len(members)

    async def rename_folder(self, ref: str, old_path: str, new_path: str) -> int:
        """Folders are derived, so renaming is moving their contents."""
        return await self.move_folder_contents(ref, old_path, new_path)

    async def delete_folder(self, ref: str, folder_path: str) -> int:
        """Delete every vector in exactly ``folder_path``."""
        validate_folder_path(folder_path)
        collection = self._collection(ref)
        async with collection.lock:
            members = collection.in_folder(folder_path)
            for record in members:
                del collection.records[record.id]
            if members:
                collection.touch()
        self._sync_registry(collection)
        logger.info("Deleted %d vector(s) from %s%s", len(members), collection.name, folder_path)
        return len(members)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def get_vector(self, ref: str, vector_id: str) -> Optional[VectorRecord]:
        record = self._collection(ref).records.get(vector_id)
        return record.model_copy(deep=True) if record is not None else None

    async def get_vectors(self, ref: str, vector_ids: Sequence[str]) -> List[VectorRecord]:
        """Records for the IDs that exist, in request order."""
        records = self._collection(ref).records
        return [records[vector_id].model_copy(deep=True) for vector_id in vector_ids if vector_id in records]

    async def list_vectors(self, ref: str) -> List[VectorRecord]:
        return [record.model_copy(deep=True) for record in self._collection(ref).records.values()]

    async def delete_vector(self, ref: str, vector_id: str) -> None:
        collection = self._collection(ref)
        async with collection.lock:
            if collection.records.pop(vector_id, None) is None:
                raise VectorNotFoundError(vector_id)
            collection.touch()
        self._sync_registry(collection)

    async def update_metadata(self, ref: str, vector_id: str, metadata: Mapping[str, Any]) -> VectorRecord:
        """Merge ``metadata`` into a vector's metadata and return the new record."""
        collection = self._collection(ref)
        patch = self._check_metadata_patch(metadata)
        async with collection.lock:
            record = collection.records.get(vector_id)
            if record is None:
                raise VectorNotFoundError(vector_id)
            updated = self._merged(record, patch, time.time())
            collection.records[vector_id] = updated
            collection.touch()
        return updated.model_copy(deep=True)

    async def batch_update_metadata(self, ref: str, updates: Sequence[Mapping[str, Any]]) -> UpdateResult:
        """
        Apply several metadata patches.

        Every patch is validated and merged before any record changes, so a
        malformed folder path or oversized metadata fails the whole batch;
        unknown IDs are reported and skipped.
        """
        collection = self._collection(ref)
        patches = [(update.get("id"), self._check_metadata_patch(update.get("metadata") or {})) for update in updates]
        result = UpdateResult()

        async with collection.lock:
            now = time.time()
            staged: Dict[str, VectorRecord] = {}
            for vector_id, patch in patches:
                record = staged.get(vector_id) or collection.records.get(vector_id)
                if record is None:
                    result.errors.append(VectorError(id=str(vector_id), error=str(VectorNotFoundError(vector_id))))
                    continue
                staged[vector_id] = self._merged(record, patch, now)
                result.updated += 1

            collection.records.update(staged)
            if staged:
                collection.touch()

        result.failed = len(result.errors)
        return result

    async def delete_by_metadata(self, ref: str, filter: Mapping[str, Any]) -> DeleteResult:
        """Delete every vector whose metadata matches ``filter``."""
        if not filter:
            raise FilterError("Filter cannot be empty")
        collection = self._collection(ref)
        async with collection.lock:
            doomed = [
                record.id
                for record in collection.records.values()
                if matches_filter(record.metadata.as_dict(), filter)
            ]
            for vector_id in doomed:
                del collection.records[vector_id]
            if doomed:
                collection.touch()
        self._sync_registry(collection)
        logger.info("Deleted %d vector(s) from %s by metadata", len(doomed), collection.name)
        return DeleteResult(deleted_count=len(doomed), deleted_ids=doomed)

    async def get_stats(self, ref: str) -> CollectionStats:
        collection = self._collection(ref)
        count = len(collection.records)
        return CollectionStats(
            vector_count=count,
            dimensions=collection.dimensions,
            folder_count=len({record.folder_path for record in collection.records.values()}),
            storage_size_bytes=self._storage_size(collection),
            last_updated=collection.updated_at,
        )

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def save(self, ref: str, directory: str) -> Manifest:
        """Persist a database as a new snapshot version under ``directory``."""
        collection = self._collection(ref)
        async with collection.lock:
            records = list(collection.records.values())
            dimensions = collection.dimensions
        manifest, _ = write_snapshot(records, collection.name, dimensions, directory)
        return manifest

    async def load(self, directory: str, database_name: Optional[str] = None) -> Manifest:
        """
        Load a snapshot into a new database.

        Records are validated again on the way in, like any insertion; a
        rejected snapshot leaves no database behind.

        Args:
            directory: Snapshot root or a specific version directory
            database_name: Target database; defaults to the saved name

        Raises:
            DatabaseExistsError: If the target database already exists
        """
        manifest, records = read_snapshot(directory)
        for record in records:
            self._parse_record(record)
        name = database_name or manifest.database_name
        await self.create_database(name, dimensions=manifest.dimensions)
        if records:
            try:
                await self.add_vectors(name, records)
            except Exception:
                await self.delete_database(name)
                raise
        logger.info("Loaded snapshot %s into %s: vectors=%d", manifest.snapshot_version, name, len(records))
        return manifest

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _collection(self, ref: str) -> _Collection:
        name = self._sessions.get(ref, ref)
        collection = self._collections.get(name)
        if collection is None:
            raise SessionNotFoundError(ref)
        return collection

    @staticmethod
    def _check_name(database_name: str) -> str:
        if not database_name or not database_name.strip():
            raise InvalidDatabaseNameError("Database name cannot be empty")
        return database_name

    def _search_options(
        self,
        top_k: Optional[int],
        threshold: Optional[float],
        include_vectors: bool,
        filter: Optional[Mapping[str, Any]],
    ) -> SearchOptions:
        settings = get_settings()
        try:
            options = SearchOptions(
                top_k=top_k if top_k is not None else settings.default_top_k,
                threshold=threshold if threshold is not None else settings.default_threshold,
                include_vectors=include_vectors,
                filter=dict(filter) if filter else None,
            )
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
            )
            raise InvalidSearchOptionsError(f"Invalid search options: {problems}") from exc
        options.top_k = min(options.top_k, settings.max_top_k)
        return options

    def _search(
        self,
        collection: _Collection,
        query_vector: Sequence[float],
        options: SearchOptions,
        predicate: Optional[Callable[[VectorRecord], bool]],
    ) -> List[SearchResult]:
        if collection.dimensions and len(query_vector) != collection.dimensions:
            raise InvalidVectorError(
                f"Query vector dimension mismatch: expected {collection.dimensions}, got {len(query_vector)}"
            )

        records, matrix = collection.snapshot()
        rows = [
            row
            for row, record in enumerate(records)
            if (predicate is None or predicate(record))
            and (options.filter is None or matches_filter(record.metadata.as_dict(), options.filter))
        ]
        if not rows:
            return []
        if len(rows) < len(records):
            matrix = matrix[rows]

        hits = cosine_top_k(matrix, query_vector, options.top_k, options.threshold)
        results: List[SearchResult] = []
        for row, score in hits:
            record = records[rows[row]]
            results.append(
                SearchResult(
                    id=record.id,
                    score=score,
                    metadata=record.metadata.as_dict(),
                    vector=list(record.values) if options.include_vectors else None,
                )
            )
        return results

    def _parse_record(self, record: RecordInput) -> Tuple[str, List[float], Dict[str, Any]]:
        """Structural checks and folder validation for one incoming record."""
        if isinstance(record, VectorRecord):
            vector_id, values, metadata = record.id, record.values, record.metadata.as_dict()
        elif isinstance(record, Mapping):
            vector_id = record.get("id")
            values = record.get("values")
            if values is None:
                values = record.get("vector")
            metadata = record.get("metadata")
            if metadata is None:
                metadata = {}
        else:
            raise InvalidVectorError("Vector record must be a mapping or VectorRecord")

        if vector_id is None or (isinstance(vector_id, str) and not vector_id.strip()):
            raise InvalidVectorError("Vector ID is required")
        vector_id = str(vector_id)
        if values is None or len(values) == 0:
            raise InvalidVectorError("Vector values are required")
        try:
            values = [float(value) for value in values]
        except (TypeError, ValueError):
            raise InvalidVectorError(f'Vector values must be numeric for vector "{vector_id}"') from None
        if not all(math.isfinite(value) for value in values):
            raise InvalidVectorError(f'Vector values must be finite for vector "{vector_id}"')

        metadata = self._check_metadata(metadata)
        metadata[FOLDER_KEY] = resolve_folder_path(metadata.get(FOLDER_KEY))
        return vector_id, values, metadata

    def _check_metadata(self, metadata: Any) -> Dict[str, Any]:
        if not isinstance(metadata, Mapping):
            raise InvalidVectorError("Metadata must be an object")
        reserved = RESERVED_METADATA_FIELDS.intersection(metadata)
        if reserved:
            raise InvalidVectorError(f"Reserved metadata field: {sorted(reserved)[0]}")
        if json_size(dict(metadata)) > self.max_metadata_bytes:
            raise InvalidVectorError("Metadata size exceeds limit")
        return dict(metadata)

    def _check_metadata_patch(self, metadata: Any) -> Dict[str, Any]:
        patch = self._check_metadata(metadata)
        if FOLDER_KEY in patch:
            patch[FOLDER_KEY] = resolve_folder_path(patch[FOLDER_KEY])
        return patch

    def _merged(self, record: VectorRecord, patch: Dict[str, Any], now: float) -> VectorRecord:
        merged = {**record.metadata.as_dict(), **patch}
        if json_size(merged) > self.max_metadata_bytes:
            raise InvalidVectorError("Metadata size exceeds limit")
        return record.model_copy(update={"metadata": VectorMetadata(**merged), "updated_at": now})

    @staticmethod
    def _storage_size(collection: _Collection) -> int:
        return len(collection.records) * (collection.dimensions or 0) * BYTES_PER_VALUE

    def _sync_registry(self, collection: _Collection) -> None:
        if self.registry is None or not self.registry.exists(collection.name):
            return
        self.registry.update(
            collection.name,
            vector_count=len(collection.records),
            storage_size_bytes=self._storage_size(collection),
        )
