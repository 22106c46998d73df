"""Metadata filter matching.

Filters are mappings in a MongoDB-like dialect::

    {"category": "tech"}                              # shorthand equality
    {"year": {"$gte": 2020, "$lt": 2025}}             # field operators
    {"tag": {"$in": ["urgent", "low"]}}
    {"$or": [{"priority": "high"}, {"$and": [...]}]}  # combinators
"""

from __future__ import annotations

import operator
from typing import Any, Callable, Dict, Mapping

from .errors import RagStoreError


class FilterError(RagStoreError, ValueError):
    """Raised for malformed filters or unknown operators."""
    pass


_MISSING = object()


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(actual: Any, expected: Any) -> bool:
        if actual is _MISSING or actual is None:
            return False
        try:
            return op(actual, expected)
        except TypeError:
            return False
    return check


def _in(actual: Any, expected: Any) -> bool:
    if not isinstance(expected, (list, tuple, set)):
        raise FilterError("$in expects a list")
    if isinstance(actual, list):
        return any(item in expected for item in actual)
    return actual in expected


def _nin(actual: Any, expected: Any) -> bool:
    if not isinstance(expected, (list, tuple, set)):
        raise FilterError("$nin expects a list")
    return not _in(actual, expected)


def _eq(actual: Any, expected: Any) -> bool:
    if actual is _MISSING:
        return False
    return actual == expected


def _ne(actual: Any, expected: Any) -> bool:
    return not _eq(actual, expected)


FIELD_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "$eq": _eq,
    "$ne": _ne,
    "$in": _in,
    "$nin": _nin,
    "$gt": _compare(operator.gt),
    "$gte": _compare(operator.ge),
    "$lt": _compare(operator.lt),
    "$lte": _compare(operator.le),
}


def _is_operator_block(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(
        isinstance(key, str) and key.startswith("$") for key in value
    )


def _match_field(actual: Any, condition: Any) -> bool:
    if not _is_operator_block(condition):
        return _eq(actual, condition)
    for name, expected in condition.items():
        check = FIELD_OPERATORS.get(name)
        if check is None:
            raise FilterError(f"Unknown filter operator: {name}")
        if not check(actual, expected):
            return False
    return True


def matches_filter(metadata: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    """True when metadata satisfies every clause of the filter."""
    if not isinstance(query, Mapping):
        raise FilterError("Filter must be a mapping")

    for key, condition in query.items():
        if key == "$and":
            if not isinstance(condition, (list, tuple)):
                raise FilterError("$and expects a list of filters")
            if not all(matches_filter(metadata, clause) for clause in condition):
                return False
        elif key == "$or":
            if not isinstance(condition, (list, tuple)):
                raise FilterError("$or expects a list of filters")
            if not any(matches_filter(metadata, clause) for clause in condition):
                return False
        elif key.startswith("$"):
            raise FilterError(f"Unknown filter operator: {key}")
        elif not _match_field(metadata.get(key, _MISSING), condition):
            return False
    return True
