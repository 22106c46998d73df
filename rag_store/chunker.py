"""Split document text into overlapping, token-budgeted chunks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from .config import get_settings
from .errors import ChunkingError
from .schemas import ChunkingOptions, ChunkMetadata, DocumentChunk, DocumentType
from .utils import (
    count_words,
    estimate_tokens,
    split_paragraphs,
    split_sentences,
    tokens_to_words,
    word_spans,
)

logger = logging.getLogger(__name__)

# Progress is guaranteed by the overlap check; this only bounds pathological input.
MAX_WINDOWS = 10000

# (text, start_offset, end_offset)
Window = Tuple[str, int, int]


@dataclass(frozen=True)
class WordWindow:
    """Fixed-size word windows advancing by ``chunk_words - overlap_words``."""
    chunk_words: int
    overlap_words: int

    def windows(self, text: str) -> List[Window]:
        spans = word_spans(text)
        words = [text[start:end] for start, end in spans]
        total = len(words)
        windows: List[Window] = []
        start = 0

        logger.debug(
            "Word windows: words=%d, chunk_words=%d, overlap_words=%d",
            total,
            self.chunk_words,
            self.overlap_words,
        )

        while start < total:
            end = min(start + self.chunk_words, total)
            windows.append((" ".join(words[start:end]), spans[start][0], spans[end - 1][1]))

            if end >= total:
                break

            next_start = end - self.overlap_words
            if next_start <= start:
                logger.warning(
                    "Overlap of %d words leaves no room to advance a %d word window; "
                    "stopping at word %d of %d",
                    self.overlap_words,
                    self.chunk_words,
                    end,
                    total,
                )
                break
            if len(windows) >= MAX_WINDOWS:
                logger.warning("Window limit %d reached; stopping at word %d of %d", MAX_WINDOWS, end, total)
                break
            start = next_start

        return windows


@dataclass(frozen=True)
class _UnitWindow:
    """Accumulates boundary-aligned units until the word budget is met."""
    chunk_words: int
    overlap_words: int

    joiner = " "

    def units(self, text: str) -> List[str]:
        raise NotImplementedError

    def overlap_units(self) -> int:
        return 1

    def windows(self, text: str) -> List[Window]:
        units = self.units(text)
        windows: List[Window] = []
        buffer: List[str] = []
        buffer_words = 0
        start_offset = 0

        for position, unit in enumerate(units):
            buffer.append(unit)
            buffer_words += count_words(unit)
            is_last = position == len(units) - 1

            if buffer_words < self.chunk_words and not is_last:
                continue

            chunk = self.joiner.join(buffer)
            end_offset = start_offset + len(chunk)
            windows.append((chunk, start_offset, end_offset))

            if self.overlap_words > 0 and not is_last:
                buffer = buffer[-self.overlap_units():]
                buffer_words = sum(count_words(kept) for kept in buffer)
                start_offset = end_offset - len(self.joiner.join(buffer))
            else:
                buffer = []
                buffer_words = 0
                start_offset = end_offset

        return windows


@dataclass(frozen=True)
class SentenceWindow(_UnitWindow):
    """Sentence-aligned chunks; the last sentence(s) seed the next chunk."""

    def units(self, text: str) -> List[str]:
        return split_sentences(text)

    def overlap_units(self) -> int:
        # Roughly ten words per sentence.
        return max(1, self.overlap_words // 10)


@dataclass(frozen=True)
class ParagraphWindow(_UnitWindow):
    """Paragraph-aligned chunks; the last paragraph seeds the next chunk."""

    joiner = "\n\n"

    def units(self, text: str) -> List[str]:
        return split_paragraphs(text)


ChunkStrategy = Union[WordWindow, SentenceWindow, ParagraphWindow]


def validate_options(options: ChunkingOptions) -> None:
    """Reject chunk/overlap sizes that cannot produce valid chunks."""
    if options.chunk_size <= 0:
        raise ChunkingError("Invalid chunk size: must be greater than 0")
    if options.overlap < 0:
        raise ChunkingError("Invalid overlap size: must be non-negative")
    if options.overlap >= options.chunk_size:
        raise ChunkingError("Overlap cannot exceed chunk size")


def select_strategy(options: ChunkingOptions) -> ChunkStrategy:
    """Pick the chunking strategy described by options."""
    chunk_words = max(1, tokens_to_words(options.chunk_size))
    overlap_words = tokens_to_words(options.overlap)

    if options.split_by_paragraph:
        return ParagraphWindow(chunk_words, overlap_words)
    if options.split_by_sentence:
        return SentenceWindow(chunk_words, overlap_words)
    return WordWindow(chunk_words, overlap_words)


def build_chunk_id(document_id: str, index: int) -> str:
    return f"{document_id}_chunk_{index}"


def _create_chunk(
    text: str,
    index: int,
    document_id: str,
    document_name: str,
    document_type: DocumentType,
    start_offset: int,
    end_offset: int,
) -> DocumentChunk:
    return DocumentChunk(
        id=build_chunk_id(document_id, index),
        text=text,
        metadata=ChunkMetadata(
            document_id=document_id,
            document_name=document_name,
            document_type=document_type,
            index=index,
            start_offset=start_offset,
            end_offset=end_offset,
            token_count=estimate_tokens(text),
        ),
    )


def chunk_text(
    text: str,
    document_id: str,
    document_name: str,
    document_type: DocumentType,
    options: Optional[ChunkingOptions] = None,
) -> List[DocumentChunk]:
    """
    Chunk a document's text into overlapping pieces.

    Sizes are converted to words at 0.77 words per token, rounded down. When
    the overlap rounds to as many words as the chunk size (for example
    ``chunk_size=9, overlap=8``, both 6 words) the word window cannot advance:
    only the first chunk is returned and a warning is logged.

    Args:
        text: Extracted plain text of the document
        document_id: Document ID, used to derive chunk IDs
        document_name: Document name copied into chunk metadata
        document_type: Source document type
        options: Chunk size and overlap in tokens plus split strategy

    Returns:
        Chunks in document order with zero-based, gap-free indices

    Raises:
        ChunkingError: If the options are invalid or text is empty
    """
    opts = options or ChunkingOptions()
    validate_options(opts)

    if len(text) == 0:
        raise ChunkingError("Cannot chunk empty text")

    strategy = select_strategy(opts)

    if count_words(text) <= strategy.chunk_words:
        return [_create_chunk(text, 0, document_id, document_name, document_type, 0, len(text))]

    windows = strategy.windows(text)
    chunks = [
        _create_chunk(window_text, index, document_id, document_name, document_type, start, end)
        for index, (window_text, start, end) in enumerate(windows)
    ]

    logger.debug(
        "Chunked %s into %d chunks using %s",
        document_id,
        len(chunks),
        type(strategy).__name__,
    )
    return chunks


def chunk_document(
    text: str,
    document_id: str,
    document_name: str,
    document_type: DocumentType,
    split_by_sentence: bool = False,
    split_by_paragraph: bool = False,
) -> List[DocumentChunk]:
    """Chunk text using the configured default chunk size and overlap."""
    settings = get_settings()
    options = ChunkingOptions(
        chunk_size=settings.chunk_size,
        overlap=settings.chunk_overlap,
        split_by_sentence=split_by_sentence,
        split_by_paragraph=split_by_paragraph,
    )
    return chunk_text(text, document_id, document_name, document_type, options)
