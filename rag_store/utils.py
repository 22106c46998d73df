"""Utility functions for chunking and storage."""

from __future__ import annotations

import json
import math
import re
from typing import Any, Iterable, List, Tuple

# 1 word ~ 1.3 tokens
TOKENS_PER_WORD = 1.3
WORDS_PER_TOKEN = 0.77

_WORD_RE = re.compile(r"\S+")
_SENTENCE_RE = re.compile(r"[^.!?]+(?:[.!?]+|$)")
_PARAGRAPH_RE = re.compile(r"\n\s*\n")


def word_spans(text: str) -> List[Tuple[int, int]]:
    """Return the (start, end) character span of every word in text."""
    return [match.span() for match in _WORD_RE.finditer(text)]


def count_words(text: str) -> int:
    return len(text.split())


def estimate_tokens(text: str) -> int:
    """Estimate token count as word count x 1.3, rounded up."""
    return math.ceil(count_words(text) * TOKENS_PER_WORD)


def tokens_to_words(tokens: int) -> int:
    """Convert a token budget into a word budget."""
    return math.floor(tokens * WORDS_PER_TOKEN)


def split_sentences(text: str) -> List[str]:
    """Split text on sentence terminators, keeping any unterminated tail."""
    sentences = [match.group(0).strip() for match in _SENTENCE_RE.finditer(text)]
    sentences = [sentence for sentence in sentences if sentence]
    return sentences or [text.strip()]


def split_paragraphs(text: str) -> List[str]:
    """Split text on blank lines, dropping empty paragraphs."""
    return [part.strip() for part in _PARAGRAPH_RE.split(text) if part.strip()]


def json_size(value: Any) -> int:
    """Size in bytes of the UTF-8 JSON encoding of value."""
    return len(json.dumps(value, ensure_ascii=False, default=str).encode("utf-8"))


def iter_batches(items: List, batch_size: int) -> Iterable[List]:
    """Yield batches of items."""
    for start in range(0, len(items), batch_size):
        yield items[start : start + batch_size]
