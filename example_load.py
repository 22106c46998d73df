#!/usr/bin/env python3
"""Example: Load a snapshot and query it, optionally inside one folder."""

import asyncio
import os
import sys

from langchain_community.embeddings import OllamaEmbeddings

from rag_store import RagStoreError, VectorStore


async def run(snapshot_path: str, folder: str, embeddings):
    store = VectorStore(dimensions=0)
    manifest = await store.load(snapshot_path)
    name = manifest.database_name

    print(f"Loaded {name}: {manifest.vector_count} vectors, {manifest.dimensions} dimensions")
    print(f"Folders: {', '.join(await store.list_folders(name)) or '-'}")
    print("Enter queries (or 'quit' to exit)")
    print()

    while True:
        query = input("Query: ").strip()
        if not query or query.lower() in ("quit", "exit", "q"):
            break

        try:
            query_vector = embeddings.embed_query(query)
            if folder:
                hits = await store.search_in_folder(name, folder, query_vector, top_k=5)
            else:
                hits = await store.search(name, query_vector, top_k=5)
        except RagStoreError as e:
            print(f"Error: {e}", file=sys.stderr)
            continue

        for rank, hit in enumerate(hits, start=1):
            text = hit.metadata.get("text", "")
            if len(text) > 150:
                text = text[:150].rstrip() + "..."
            print(f"[{rank}] Score: {hit.score:.4f}")
            print(f"    Folder: {hit.metadata.get('folderPath')}")
            print(f"    File:   {hit.metadata.get('documentName', hit.id)}")
            print(f"    Text:   {text}")
        print()


def main():
    snapshot_path = os.getenv("SNAPSHOT_PATH", "./snapshots")
    folder = os.getenv("FOLDER", "")
    embed_model = os.getenv("EMBED_MODEL", "mxbai-embed-large")
    ollama_base_url = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")

    if not os.path.exists(snapshot_path):
        print(f"Error: Snapshot not found: {snapshot_path}")
        print("Run example_build.py first or set SNAPSHOT_PATH environment variable")
        sys.exit(1)

    embeddings = OllamaEmbeddings(model=embed_model, base_url=ollama_base_url)
    asyncio.run(run(snapshot_path, folder, embeddings))
    print("Goodbye!")


if __name__ == "__main__":
    main()
