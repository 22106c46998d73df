"""Registry of named databases and their descriptive metadata."""

from __future__ import annotations

import itertools
import logging
import time
from typing import Dict, List, Optional, Tuple

from .errors import DatabaseExistsError, DatabaseNotFoundError, InvalidDatabaseNameError
from .schemas import DatabaseMetadata, DatabaseType

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"description", "vector_count", "storage_size_bytes"})


def _check_name(database_name: str) -> str:
    if not database_name or not database_name.strip():
        raise InvalidDatabaseNameError("Database name cannot be empty")
    return database_name


class DatabaseMetadataService:
    """In-memory backing store for ``DatabaseMetadata`` entries."""

    def __init__(self) -> None:
        self._entries: Dict[str, DatabaseMetadata] = {}
        self._order: Dict[str, int] = {}
        self._counter = itertools.count()

    def create(
        self,
        database_name: str,
        type: DatabaseType,
        owner: str,
        description: Optional[str] = None,
    ) -> DatabaseMetadata:
        """
        Create metadata for a new database.

        Raises:
            InvalidDatabaseNameError: If the name is empty or blank
            DatabaseExistsError: If the name is already taken
        """
        name = _check_name(database_name)
        if name in self._entries:
            raise DatabaseExistsError(name)
        now = time.time()
        metadata = DatabaseMetadata(
            database_name=name,
            type=type,
            owner=owner,
            created_at=now,
            last_accessed_at=now,
            description=description,
        )
        self._entries[name] = metadata
        self._order[name] = next(self._counter)
        return metadata.model_copy()

    def get(self, database_name: str) -> Optional[DatabaseMetadata]:
        """Return metadata and bump its access time, or None if unknown."""
        metadata = self._entries.get(database_name)
        if metadata is None:
            return None
        metadata = metadata.model_copy(update={"last_accessed_at": time.time()})
        self._entries[database_name] = metadata
        return metadata.model_copy()

    def exists(self, database_name: str) -> bool:
        return database_name in self._entries

    def update(self, database_name: str, **changes) -> DatabaseMetadata:
        """
        Update the mutable fields of a database's metadata.

        Only ``description``, ``vector_count`` and ``storage_size_bytes`` are
        applied; other keys are ignored.

        Raises:
            DatabaseNotFoundError: If the database is unknown
        """
        metadata = self._entries.get(database_name)
        if metadata is None:
            raise DatabaseNotFoundError(database_name)
        applied = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS}
        applied["last_accessed_at"] = time.time()
        metadata = metadata.model_copy(update=applied)
        self._entries[database_name] = metadata
        return metadata.model_copy()

    def delete(self, database_name: str) -> None:
        if self._entries.pop(database_name, None) is None:
            raise DatabaseNotFoundError(database_name)
        self._order.pop(database_name, None)

    def list(self, type: Optional[DatabaseType] = None) -> List[DatabaseMetadata]:
        """All entries, optionally of one type, newest first."""
        entries = [
            metadata
            for metadata in self._entries.values()
            if type is None or metadata.type == type
        ]
        entries.sort(key=self._sort_key, reverse=True)
        return [metadata.model_copy() for metadata in entries]

    def _sort_key(self, metadata: DatabaseMetadata) -> Tuple[float, int]:
        return metadata.created_at, self._order[metadata.database_name]


class DatabaseRegistry:
    """Tracks which databases exist; metadata lives in the backing service."""

    def __init__(self, metadata_service: Optional[DatabaseMetadataService] = None) -> None:
        self.metadata_service = metadata_service or DatabaseMetadataService()

    def register(
        self,
        database_name: str,
        type: DatabaseType,
        owner: str,
        description: Optional[str] = None,
    ) -> DatabaseMetadata:
        metadata = self.metadata_service.create(database_name, type, owner, description)
        logger.info("Registered %s database %s for %s", type, database_name, owner or "<anonymous>")
        return metadata

    def unregister(self, database_name: str) -> None:
        self.metadata_service.delete(database_name)
        logger.info("Unregistered database %s", database_name)

    def get(self, database_name: str) -> Optional[DatabaseMetadata]:
        return self.metadata_service.get(database_name)

    def exists(self, database_name: str) -> bool:
        return self.metadata_service.exists(database_name)

    def list(self, type: Optional[DatabaseType] = None) -> List[DatabaseMetadata]:
        return self.metadata_service.list(type)

    def update(self, database_name: str, **changes) -> DatabaseMetadata:
        return self.metadata_service.update(database_name, **changes)
