"""Virtual folder path grammar.

Folders are not stored anywhere: a folder exists while at least one vector's
``folderPath`` metadata names it. These helpers only validate and take apart
path strings.
"""

from __future__ import annotations

from typing import Any, Optional

from .errors import FolderPathError
from .schemas import ROOT_FOLDER


def validate_folder_path(path: Optional[str]) -> str:
    """
    Check a folder path against the grammar and return it unchanged.

    Raises:
        FolderPathError: If the path is empty, relative, has a trailing slash
            (other than the root ``/``) or contains ``//``
    """
    if path is None or path == "":
        raise FolderPathError("Folder path cannot be empty")
    if not isinstance(path, str):
        raise FolderPathError("Folder path must be a string")
    if not path.startswith("/"):
        raise FolderPathError("Folder path must start with /")
    if path != ROOT_FOLDER and path.endswith("/"):
        raise FolderPathError("Folder path cannot end with /")
    if "//" in path:
        raise FolderPathError("Folder path cannot contain double slashes")
    return path


def resolve_folder_path(value: Any) -> str:
    """Validate a metadata ``folderPath`` value, defaulting a missing one to root."""
    if value is None:
        return ROOT_FOLDER
    return validate_folder_path(value)

