"""Save and load database snapshots on disk.

Layout of a snapshot directory::

    <out_dir>/
        versions/<snapshot_version>/
            index.faiss     # cosine (inner product over normalised rows)
            vectors.jsonl   # one VectorRecord per line, raw values
            manifest.json
        current -> versions/<snapshot_version>
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

import faiss
from pydantic import ValidationError

from .errors import SnapshotError
from .schemas import Manifest, VectorRecord
from .similarity import build_index, normalized_matrix

logger = logging.getLogger(__name__)

INDEX_FILE = "index.faiss"
VECTORS_FILE = "vectors.jsonl"
MANIFEST_FILE = "manifest.json"


def write_snapshot(
    records: List[VectorRecord],
    database_name: str,
    dimensions: Optional[int],
    out_dir: str,
) -> Tuple[Manifest, str]:
    """
    Write records as a new snapshot version and make it current.

    Args:
        records: Records to persist
        database_name: Name recorded in the manifest
        dimensions: Dimensionality of the database, if fixed
        out_dir: Snapshot root directory

    Returns:
        The written manifest and the version directory
    """
    snapshot_version = str(int(time.time() * 1000))
    version_dir = os.path.join(out_dir, "versions", snapshot_version)
    while os.path.exists(version_dir):
        snapshot_version = str(int(snapshot_version) + 1)
        version_dir = os.path.join(out_dir, "versions", snapshot_version)
    os.makedirs(version_dir)

    matrix = normalized_matrix([record.values for record in records], dimensions)
    faiss.write_index(build_index(matrix), os.path.join(version_dir, INDEX_FILE))

    with open(os.path.join(version_dir, VECTORS_FILE), "w", encoding="utf-8") as handle:
        for record in records:
            handle.write(record.model_dump_json(by_alias=True))
            handle.write("\n")

    manifest = Manifest(
        snapshot_version=snapshot_version,
        database_name=database_name,
        build_time=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        faiss_metric="cosine",
        dimensions=dimensions,
        vector_count=len(records),
        folder_paths=sorted({record.folder_path for record in records}),
    )
    with open(os.path.join(version_dir, MANIFEST_FILE), "w", encoding="utf-8") as handle:
        json.dump(manifest.model_dump(), handle, ensure_ascii=False, indent=2)

    _activate_version(out_dir, version_dir)
    logger.info(
        "Saved snapshot %s of %s: vectors=%d, dir=%s",
        snapshot_version,
        database_name,
        len(records),
        version_dir,
    )
    return manifest, version_dir


def _activate_version(out_dir: str, version_dir: str) -> None:
    """
    Atomically switch the 'current' symlink to a new version.

    Falls back to copying on systems that don't support symlinks.
    """
    current_path = os.path.join(out_dir, "current")
    tmp_link = os.path.join(out_dir, "current_tmp")
    relative_target = os.path.relpath(version_dir, out_dir)

    if os.path.islink(tmp_link) or os.path.exists(tmp_link):
        if os.path.isdir(tmp_link) and not os.path.islink(tmp_link):
            shutil.rmtree(tmp_link)
        else:
            os.unlink(tmp_link)

    try:
        os.symlink(relative_target, tmp_link)
        os.replace(tmp_link, current_path)
    except OSError:
        if os.path.lexists(tmp_link):
            os.unlink(tmp_link)
        if os.path.islink(current_path):
            os.unlink(current_path)
        elif os.path.exists(current_path):
            shutil.rmtree(current_path)
        shutil.copytree(version_dir, current_path)


def resolve_snapshot_dir(path: str) -> Path:
    """Accept either a snapshot root (uses ``current``) or a version directory."""
    snapshot_dir = Path(path)
    if not (snapshot_dir / MANIFEST_FILE).exists() and (snapshot_dir / "current").exists():
        snapshot_dir = snapshot_dir / "current"
    return snapshot_dir


def read_snapshot(path: str) -> Tuple[Manifest, List[VectorRecord]]:
    """
    Read a snapshot from disk.

    Args:
        path: Snapshot root (e.g. "snapshots/handbook") or a version directory

    Returns:
        Manifest and records in saved order

    Raises:
        FileNotFoundError: If required files are missing
        SnapshotError: If files cannot be parsed or disagree with each other
    """
    snapshot_dir = resolve_snapshot_dir(path)

    index_file = snapshot_dir / INDEX_FILE
    vectors_file = snapshot_dir / VECTORS_FILE
    manifest_file = snapshot_dir / MANIFEST_FILE

    if not index_file.exists():
        raise FileNotFoundError(f"Index file not found: {index_file}")
    if not vectors_file.exists():
        raise FileNotFoundError(f"Vectors file not found: {vectors_file}")
    if not manifest_file.exists():
        raise FileNotFoundError(f"Manifest file not found: {manifest_file}")

    try:
        with open(manifest_file, "r", encoding="utf-8") as f:
            manifest = Manifest(**json.load(f))

        records: List[VectorRecord] = []
        with open(vectors_file, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    records.append(VectorRecord.model_validate_json(line))
    except (ValueError, ValidationError) as exc:
        raise SnapshotError(f"Corrupt snapshot in {snapshot_dir}: {exc}") from exc

    index = faiss.read_index(str(index_file))
    if index.ntotal != len(records) or manifest.vector_count != len(records):
        raise SnapshotError(
            f"Snapshot in {snapshot_dir} is inconsistent: manifest={manifest.vector_count}, "
            f"index={index.ntotal}, vectors={len(records)}"
        )

    return manifest, records
