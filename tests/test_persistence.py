"""Tests for snapshot save and load."""

import json
import os

import pytest

from rag_store.errors import DatabaseExistsError, FolderPathError, InvalidVectorError, SnapshotError
from rag_store.persistence import read_snapshot
from rag_store.store import VectorStore


async def populated_store(random_vector):
    store = VectorStore(dimensions=8)
    await store.create_session("kb")
    await store.add_vectors(
        "kb",
        [
            {"id": f"v{i}", "values": random_vector(i), "metadata": {"folderPath": "/a" if i % 2 else "/b", "n": i}}
            for i in range(6)
        ],
    )
    return store


@pytest.mark.asyncio
async def test_save_writes_snapshot_layout(tmp_path, random_vector):
    store = await populated_store(random_vector)

    manifest = await store.save("kb", str(tmp_path))

    current = tmp_path / "current"
    assert current.exists()
    assert (current / "index.faiss").exists()
    assert (current / "vectors.jsonl").exists()
    assert manifest.vector_count == 6
    assert manifest.dimensions == 8
    assert manifest.folder_paths == ["/a", "/b"]
    with open(current / "manifest.json", encoding="utf-8") as f:
        assert json.load(f)["database_name"] == "kb"


@pytest.mark.asyncio
async def test_round_trip_preserves_records(tmp_path, random_vector):
    store = await populated_store(random_vector)
    await store.save("kb", str(tmp_path))

    restored = VectorStore(dimensions=8)
    manifest = await restored.load(str(tmp_path), "kb-copy")

    assert manifest.database_name == "kb"
    assert await restored.list_folders("kb-copy") == ["/a", "/b"]
    original = await store.get_vector("kb", "v3")
    copy = await restored.get_vector("kb-copy", "v3")
    assert copy.values == original.values
    assert copy.metadata.as_dict() == {"folderPath": "/a", "n": 3}

    query = random_vector(50)
    assert [r.id for r in await restored.search("kb-copy", query, top_k=3)] == [
        r.id for r in await store.search("kb", query, top_k=3)
    ]


@pytest.mark.asyncio
async def test_second_save_switches_current(tmp_path, random_vector):
    store = await populated_store(random_vector)
    first = await store.save("kb", str(tmp_path))
    await store.delete_folder("kb", "/a")
    second = await store.save("kb", str(tmp_path))

    assert first.snapshot_version != second.snapshot_version
    assert len(os.listdir(tmp_path / "versions")) == 2
    manifest, records = read_snapshot(str(tmp_path))
    assert manifest.snapshot_version == second.snapshot_version
    assert len(records) == 3


@pytest.mark.asyncio
async def test_load_into_existing_database_fails(tmp_path, random_vector):
    store = await populated_store(random_vector)
    await store.save("kb", str(tmp_path))

    with pytest.raises(DatabaseExistsError):
        await store.load(str(tmp_path))


def test_missing_files(tmp_path):
    with pytest.raises(FileNotFoundError, match="Index file not found"):
        read_snapshot(str(tmp_path))


@pytest.mark.asyncio
async def test_inconsistent_snapshot(tmp_path, random_vector):
    store = await populated_store(random_vector)
    await store.save("kb", str(tmp_path))
    vectors_file = tmp_path / "current" / "vectors.jsonl"
    lines = vectors_file.read_text(encoding="utf-8").splitlines()
    vectors_file.write_text("\n".join(lines[:-1]) + "\n", encoding="utf-8")

    with pytest.raises(SnapshotError, match="inconsistent"):
        read_snapshot(str(tmp_path))


@pytest.mark.asyncio
async def test_corrupt_snapshot(tmp_path, random_vector):
    store = await populated_store(random_vector)
    await store.save("kb", str(tmp_path))
    (tmp_path / "current" / "vectors.jsonl").write_text("{not json\n", encoding="utf-8")

    with pytest.raises(SnapshotError, match="Corrupt snapshot"):
        read_snapshot(str(tmp_path))


@pytest.mark.asyncio
async def test_load_revalidates_folder_paths(tmp_path, random_vector):
    store = await populated_store(random_vector)
    await store.save("kb", str(tmp_path))
    vectors_file = tmp_path / "current" / "vectors.jsonl"
    vectors_file.write_text(
        vectors_file.read_text(encoding="utf-8").replace('"folderPath":"/a"', '"folderPath":"a"'),
        encoding="utf-8",
    )

    restored = VectorStore(dimensions=8)
    with pytest.raises(FolderPathError):
        await restored.load(str(tmp_path), "kb-copy")
    assert await restored.list_databases() == []


@pytest.mark.asyncio
async def test_load_rejects_oversized_metadata_without_leaving_database(tmp_path, random_vector):
    store = VectorStore(dimensions=8)
    await store.create_session("kb")
    await store.add_vectors("kb", [{"id": "v0", "values": random_vector(0), "metadata": {"note": "x" * 300}}])
    await store.save("kb", str(tmp_path))

    restored = VectorStore(dimensions=8, max_metadata_bytes=100)
    with pytest.raises(InvalidVectorError, match="Metadata size"):
        await restored.load(str(tmp_path))
    assert await restored.list_databases() == []

    roomy = VectorStore(dimensions=8, max_metadata_bytes=1000)
    await roomy.load(str(tmp_path))
    assert [r.id for r in await roomy.list_vectors("kb")] == ["v0"]


@pytest.mark.asyncio
async def test_load_removes_database_when_insert_fails(tmp_path, random_vector):
    store = VectorStore(dimensions=8)
    await store.create_session("kb")
    await store.add_vectors("kb", [{"id": "v0", "values": random_vector(0)}])
    await store.save("kb", str(tmp_path))
    vectors_file = tmp_path / "current" / "vectors.jsonl"
    record = json.loads(vectors_file.read_text(encoding="utf-8"))
    record["values"] = record["values"][:4]
    vectors_file.write_text(json.dumps(record) + "\n", encoding="utf-8")

    restored = VectorStore(dimensions=8)
    with pytest.raises(InvalidVectorError, match="dimensions"):
        await restored.load(str(tmp_path))
    assert await restored.list_databases() == []
