"""Tests for the folder path grammar."""

import pytest

from rag_store.errors import FolderPathError
from rag_store.folders import resolve_folder_path, validate_folder_path


@pytest.mark.parametrize("path", ["/", "/documents", "/documents/2024", "/a/b/c", "/with space", "/ünïcode"])
def test_valid_paths(path):
    assert validate_folder_path(path) == path


@pytest.mark.parametrize(
    "path,message",
    [
        ("", "Folder path cannot be empty"),
        (None, "Folder path cannot be empty"),
        ("documents", "Folder path must start with /"),
        ("documents/", "Folder path must start with /"),
        ("/documents/", "Folder path cannot end with /"),
        ("/documents//2024", "Folder path cannot contain double slashes"),
        (42, "Folder path must be a string"),
    ],
)
def test_invalid_paths(path, message):
    with pytest.raises(FolderPathError, match=message):
        validate_folder_path(path)


def test_double_slash_root():
    """Test '//' fails as a trailing slash before the double-slash rule."""
    with pytest.raises(FolderPathError, match="cannot end with /"):
        validate_folder_path("//")


def test_resolve_defaults_missing_to_root():
    assert resolve_folder_path(None) == "/"
    assert resolve_folder_path("/x") == "/x"
    with pytest.raises(FolderPathError):
        resolve_folder_path("")

