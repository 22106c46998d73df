"""Shared fixtures for RAG Store tests."""

import os

import numpy as np
import pytest

from rag_store.config import get_settings
from rag_store.store import VectorStore

DIM = 8


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Isolate tests from RAG_STORE_* variables and the settings cache."""
    for key in list(os.environ):
        if key.startswith("RAG_STORE_"):
            monkeypatch.delenv(key)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store():
    return VectorStore(dimensions=DIM)


@pytest.fixture
def random_vector():
    """Deterministic random vector factory: random_vector(seed)."""
    def make(seed: int, dim: int = DIM):
        rng = np.random.default_rng(seed)
        return rng.random(dim).tolist()
    return make


@pytest.fixture
def unit_vector():
    """One-hot vector factory: unit_vector(axis)."""
    def make(axis: int, dim: int = DIM):
        values = [0.0] * dim
        values[axis % dim] = 1.0
        return values
    return make
