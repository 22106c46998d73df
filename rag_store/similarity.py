"""Cosine top-K search over in-memory vectors using a flat FAISS index."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import faiss
import numpy as np

from .errors import InvalidVectorError


def normalized_matrix(vectors: Sequence[Sequence[float]], dimensions: Optional[int] = None) -> np.ndarray:
    """Stack vectors into an L2-normalised float32 matrix (zero rows stay zero)."""
    if len(vectors) == 0:
        return np.zeros((0, dimensions or 0), dtype="float32")
    matrix = np.array(vectors, dtype="float32")
    if matrix.ndim != 2:
        raise InvalidVectorError("Vectors must share one dimensionality")
    matrix = np.ascontiguousarray(matrix)
    faiss.normalize_L2(matrix)
    return matrix


def build_index(matrix: np.ndarray) -> faiss.Index:
    """Inner-product index over normalised rows, i.e. cosine similarity."""
    index = faiss.IndexFlatIP(matrix.shape[1])
    if matrix.shape[0]:
        index.add(np.ascontiguousarray(matrix, dtype="float32"))
    return index


def cosine_top_k(
    matrix: np.ndarray,
    query_vector: Sequence[float],
    top_k: int,
    threshold: Optional[float] = None,
) -> List[Tuple[int, float]]:
    """
    Rank the rows of a normalised matrix against a query.

    Args:
        matrix: Output of ``normalized_matrix``
        query_vector: Raw (unnormalised) query embedding
        top_k: Maximum number of hits
        threshold: Minimum score a hit must reach

    Returns:
        (row, score) pairs ordered by descending score; scores are cosine
        similarities clamped to 0.0-1.0

    Raises:
        InvalidVectorError: If the query dimensionality differs from the matrix
    """
    query = np.array([query_vector], dtype="float32")
    if query.ndim != 2 or (matrix.shape[1] and query.shape[1] != matrix.shape[1]):
        raise InvalidVectorError(
            f"Query vector dimension mismatch: expected {matrix.shape[1]}, got {query.shape[-1]}"
        )
    if matrix.shape[0] == 0 or top_k <= 0:
        return []

    faiss.normalize_L2(query)
    index = build_index(matrix)
    scores, rows = index.search(query, min(top_k, matrix.shape[0]))

    hits: List[Tuple[int, float]] = []
    for row, score in zip(rows[0], scores[0]):
        if row == -1:
            break
        clamped = float(min(1.0, max(0.0, score)))
        if threshold is not None and clamped < threshold:
            break
        hits.append((int(row), clamped))
    return hits
