"""Tests for metadata filters."""

import pytest

from rag_store.filters import FilterError, matches_filter

METADATA = {"folderPath": "/docs", "category": "tech", "year": 2023, "tags": ["a", "b"], "draft": None}


@pytest.mark.parametrize(
    "query,expected",
    [
        ({}, True),
        ({"category": "tech"}, True),
        ({"category": "news"}, False),
        ({"missing": "x"}, False),
        ({"year": {"$eq": 2023}}, True),
        ({"year": {"$ne": 2023}}, False),
        ({"missing": {"$ne": 1}}, True),
        ({"year": {"$gt": 2022, "$lte": 2023}}, True),
        ({"year": {"$gte": 2024}}, False),
        ({"year": {"$lt": 2023}}, False),
        ({"category": {"$gt": 5}}, False),
        ({"draft": {"$lt": 1}}, False),
        ({"category": {"$in": ["tech", "science"]}}, True),
        ({"tags": {"$in": ["b", "z"]}}, True),
        ({"category": {"$nin": ["tech"]}}, False),
        ({"$or": [{"category": "news"}, {"year": 2023}]}, True),
        ({"$or": [{"category": "news"}, {"year": 1999}]}, False),
        ({"$and": [{"category": "tech"}, {"year": {"$gte": 2020}}]}, True),
        ({"folderPath": "/docs", "$and": [{"year": 2023}, {"category": "news"}]}, False),
    ],
)
def test_matches_filter(query, expected):
    assert matches_filter(METADATA, query) is expected


@pytest.mark.parametrize(
    "query,message",
    [
        ({"year": {"$regex": "x"}}, "Unknown filter operator: \\$regex"),
        ({"$not": {}}, "Unknown filter operator: \\$not"),
        ({"$or": {"year": 1}}, "\\$or expects a list"),
        ({"category": {"$in": "tech"}}, "\\$in expects a list"),
    ],
)
def test_malformed_filters(query, message):
    with pytest.raises(FilterError, match=message):
        matches_filter(METADATA, query)


def test_filter_must_be_mapping():
    with pytest.raises(FilterError):
        matches_filter(METADATA, ["category"])
