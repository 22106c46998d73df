"""Tests for folder listing, statistics, folder-scoped search and moves."""

import asyncio

import pytest

from rag_store.errors import FolderPathError, VectorNotFoundError


async def seed(store, random_vector, folders):
    """Insert one vector per entry of ``folders`` and return the session ID."""
    session_id = await store.create_session("test-db")
    await store.add_vectors(
        session_id,
        [
            {"id": f"vec-{i + 1}", "values": random_vector(i), "metadata": {"folderPath": folder}}
            for i, folder in enumerate(folders)
        ],
    )
    return session_id


async def folder_counts(store, session_id):
    return {f.path: f.vector_count for f in await store.get_all_folders_with_counts(session_id)}


@pytest.mark.asyncio
async def test_list_folders_empty(store):
    session_id = await store.create_session("test-db")

    assert await store.list_folders(session_id) == []


@pytest.mark.asyncio
async def test_list_folders_sorted_and_distinct(store, random_vector):
    session_id = await seed(store, random_vector, ["/z", "/a", "/b", "/a"])

    assert await store.list_folders(session_id) == ["/a", "/b", "/z"]
    assert await folder_counts(store, session_id) == {"/a": 2, "/b": 1, "/z": 1}


@pytest.mark.asyncio
async def test_folder_statistics_exact_match(store, random_vector):
    session_id = await seed(store, random_vector, ["/documents", "/documents", "/documents/2024"])

    stats = await store.get_folder_statistics(session_id, "/documents")
    assert stats.folder_path == "/documents"
    assert stats.vector_count == 2
    assert stats.size_bytes == 2 * 8 * 4
    assert stats.last_modified is not None


@pytest.mark.asyncio
async def test_folder_statistics_unknown_folder_is_zero(store, random_vector):
    session_id = await seed(store, random_vector, ["/documents"])

    stats = await store.get_folder_statistics(session_id, "/nowhere")
    assert stats.vector_count == 0
    assert stats.size_bytes == 0
    assert stats.last_modified is None

    with pytest.raises(FolderPathError):
        await store.get_folder_statistics(session_id, "nowhere")


@pytest.mark.asyncio
async def test_search_in_folder_only_returns_that_folder(store, random_vector):
    folders = ["/target"] * 10 + ["/other"] * 10 + ["/target/sub"] * 5
    session_id = await seed(store, random_vector, folders)

    results = await store.search_in_folder(session_id, "/target", random_vector(99), top_k=3)

    assert len(results) == 3
    assert all(r.metadata["folderPath"] == "/target" for r in results)
    scores = [r.score for r in results]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_search_in_folder_matches_global_ranking(store, random_vector):
    session_id = await seed(store, random_vector, ["/a", "/b"] * 6)
    query = random_vector(42)

    in_folder = await store.search_in_folder(session_id, "/a", query, top_k=6)
    everywhere = await store.search(session_id, query, top_k=12)

    assert [r.id for r in in_folder] == [r.id for r in everywhere if r.metadata["folderPath"] == "/a"]


@pytest.mark.asyncio
async def test_search_in_empty_or_unknown_folder(store, random_vector):
    session_id = await seed(store, random_vector, ["/a"])

    assert await store.search_in_folder(session_id, "/missing", random_vector(1)) == []


@pytest.mark.asyncio
async def test_search_in_folder_validates_path(store, random_vector):
    session_id = await seed(store, random_vector, ["/a"])

    with pytest.raises(FolderPathError, match="Folder path must start with /"):
        await store.search_in_folder(session_id, "a", random_vector(1))


@pytest.mark.asyncio
async def test_move_to_folder_end_to_end(store, random_vector):
    session_id = await seed(store, random_vector, ["/documents"] * 3)

    moved = await store.move_to_folder(session_id, ["vec-1"], "/archive")

    assert moved == 1
    assert (await store.get_folder_statistics(session_id, "/archive")).vector_count == 1
    assert (await store.get_folder_statistics(session_id, "/documents")).vector_count == 2
    assert (await store.get_vector(session_id, "vec-1")).folder_path == "/archive"


@pytest.mark.asyncio
async def test_move_reduces_source_count(store, random_vector):
    session_id = await seed(store, random_vector, ["/src"] * 6)

    await store.move_to_folder(session_id, ["vec-1", "vec-2", "vec-3", "vec-4"], "/dst")

    assert (await store.get_folder_statistics(session_id, "/src")).vector_count == 2
    assert (await store.get_folder_statistics(session_id, "/dst")).vector_count == 4


@pytest.mark.asyncio
async def test_move_to_folder_accepts_single_id_and_is_idempotent(store, random_vector):
    session_id = await seed(store, random_vector, ["/a"])

    assert await store.move_to_folder(session_id, "vec-1", "/b") == 1
    assert await store.move_to_folder(session_id, "vec-1", "/b") == 0
    assert await store.list_folders(session_id) == ["/b"]


@pytest.mark.asyncio
async def test_move_to_folder_unknown_id_changes_nothing(store, random_vector):
    session_id = await seed(store, random_vector, ["/a", "/a", "/b"])
    before = await folder_counts(store, session_id)

    with pytest.raises(VectorNotFoundError, match="Vector not found: ghost"):
        await store.move_to_folder(session_id, ["vec-1", "ghost", "vec-3"], "/c")

    assert await folder_counts(store, session_id) == before
    assert (await store.get_vector(session_id, "vec-1")).folder_path == "/a"


@pytest.mark.asyncio
async def test_move_to_folder_validates_target(store, random_vector):
    session_id = await seed(store, random_vector, ["/a"])

    with pytest.raises(FolderPathError, match="cannot end with /"):
        await store.move_to_folder(session_id, ["vec-1"], "/b/")


@pytest.mark.asyncio
async def test_move_preserves_other_metadata(store, random_vector):
    session_id = await store.create_session("test-db")
    await store.add_vectors(
        session_id,
        [{"id": "v", "values": random_vector(1), "metadata": {"folderPath": "/a", "title": "Report"}}],
    )

    await store.move_to_folder(session_id, ["v"], "/b")

    record = await store.get_vector(session_id, "v")
    assert record.metadata.as_dict() == {"folderPath": "/b", "title": "Report"}


@pytest.mark.asyncio
async def test_move_folder_contents(store, random_vector):
    session_id = await seed(store, random_vector, ["/src", "/src", "/dst", "/other"])

    moved = await store.move_folder_contents(session_id, "/src", "/dst")

    assert moved == 2
    assert await folder_counts(store, session_id) == {"/dst": 3, "/other": 1}


@pytest.mark.asyncio
async def test_move_folder_contents_empty_source_is_noop(store, random_vector):
    session_id = await seed(store, random_vector, ["/dst"])

    assert await store.move_folder_contents(session_id, "/empty", "/dst") == 0
    assert (await store.get_folder_statistics(session_id, "/dst")).vector_count == 1


@pytest.mark.asyncio
async def test_move_folder_contents_validates_paths(store, random_vector):
    session_id = await seed(store, random_vector, ["/src"])

    with pytest.raises(FolderPathError):
        await store.move_folder_contents(session_id, "/src", "dst")
    with pytest.raises(FolderPathError):
        await store.move_folder_contents(session_id, "//src", "/dst")


@pytest.mark.asyncio
async def test_subfolders_are_not_moved_with_parent(store, random_vector):
    session_id = await seed(store, random_vector, ["/docs", "/docs/2024"])

    await store.rename_folder(session_id, "/docs", "/papers")

    assert await store.list_folders(session_id) == ["/docs/2024", "/papers"]


@pytest.mark.asyncio
async def test_delete_folder(store, random_vector):
    session_id = await seed(store, random_vector, ["/tmp", "/tmp", "/keep"])

    assert await store.delete_folder(session_id, "/tmp") == 2
    assert await store.list_folders(session_id) == ["/keep"]
    assert await store.delete_folder(session_id, "/tmp") == 0


@pytest.mark.asyncio
async def test_searches_during_moves_see_whole_records(store, random_vector):
    session_id = await seed(store, random_vector, ["/a"] * 20)
    query = random_vector(7)

    async def mover():
        for i in range(20):
            await store.move_to_folder(session_id, [f"vec-{i + 1}"], "/b")
            await asyncio.sleep(0)

    async def searcher():
        seen = []
        for _ in range(20):
            hits = await store.search_in_folder(session_id, "/a", query, top_k=20)
            assert all(hit.metadata["folderPath"] == "/a" for hit in hits)
            seen.append(len(hits))
            await asyncio.sleep(0)
        return seen

    _, seen = await asyncio.gather(mover(), searcher())

    assert seen == sorted(seen, reverse=True)
    assert (await store.get_folder_statistics(session_id, "/b")).vector_count == 20
