#!/usr/bin/env python3
"""Example: Ingest a directory of text files and save a snapshot."""

import asyncio
import os
import sys
from pathlib import Path

from langchain_community.embeddings import OllamaEmbeddings

from rag_store import ChunkingOptions, DocumentIngestor, VectorStore, configure_logging

TEXT_EXTENSIONS = {".txt": "txt", ".md": "md"}


def folder_for(path: Path, source_dir: Path) -> str:
    """Mirror the file's directory under the source root as a folder path."""
    parent = path.parent.relative_to(source_dir).as_posix()
    return "/" if parent in ("", ".") else "/" + parent


async def build(source_dir: Path, out_dir: str, database_name: str, embeddings, options: ChunkingOptions):
    store = VectorStore(dimensions=0)
    session_id = await store.create_session(database_name)
    ingestor = DocumentIngestor(store, embeddings, show_progress=True)

    files = sorted(p for p in source_dir.rglob("*") if p.suffix.lower() in TEXT_EXTENSIONS)
    failed = []
    for path in files:
        relpath = path.relative_to(source_dir).as_posix()
        text = path.read_text(encoding="utf-8")
        if not text.strip():
            print(f"[WARN] empty file skipped: {relpath}")
            continue
        try:
            result = await ingestor.ingest_text(
                session_id,
                text=text,
                document_id=relpath,
                document_name=path.name,
                document_type=TEXT_EXTENSIONS[path.suffix.lower()],
                folder_path=folder_for(path, source_dir),
                options=options,
            )
        except Exception as exc:
            print(f"[WARN] ingest failed: {relpath}: {exc}")
            failed.append(relpath)
            continue
        print(f"{relpath}: chunks={result.chunk_count}, stored={result.added}")

    for folder in await store.get_all_folders_with_counts(session_id):
        print(f"  {folder.path}: {folder.vector_count} vector(s)")

    manifest = await store.save(session_id, out_dir)
    return manifest, failed


def main():
    source_dir = Path(os.getenv("SOURCE_DIR", "./docs"))
    out_dir = os.getenv("OUT_DIR", "./snapshots")
    database_name = os.getenv("DATABASE_NAME", "docs")
    embed_model = os.getenv("EMBED_MODEL", "mxbai-embed-large")
    ollama_base_url = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")

    chunk_size = int(os.getenv("CHUNK_SIZE", "500"))
    overlap = int(os.getenv("OVERLAP", "50"))

    if not source_dir.is_dir():
        print(f"Error: Source directory not found: {source_dir}")
        print("Set SOURCE_DIR environment variable or create ./docs directory")
        sys.exit(1)

    configure_logging()
    embeddings = OllamaEmbeddings(model=embed_model, base_url=ollama_base_url)
    options = ChunkingOptions(chunk_size=chunk_size, overlap=overlap)

    try:
        manifest, failed = asyncio.run(build(source_dir, out_dir, database_name, embeddings, options))
    except Exception as e:
        print(f"\nError during ingest: {e}", file=sys.stderr)
        sys.exit(1)

    print()
    print(f"Snapshot version: {manifest.snapshot_version}")
    print(f"Vector count:     {manifest.vector_count}")
    print(f"Folders:          {', '.join(manifest.folder_paths) or '-'}")
    print(f"Failed files:     {len(failed)}")
    print(f"Snapshot available at: {out_dir}/current")


if __name__ == "__main__":
    main()
