"""Text chunking utilities for artifact ingestion."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n+")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


class ChunkKind(str, Enum):
    PARAGRAPH = "paragraph"
    SENTENCE = "sentence"
    FIXED_SIZE = "fixed_size"
    WHOLE_FILE = "whole_file"


@dataclass(frozen=True)
class ChunkStrategy:
    """How source text is split before embedding.

    Use the constructors: ``ChunkStrategy.paragraph()``, ``.sentence()``,
    ``.fixed_size(n)`` and ``.whole_file()``.
    """

    kind: ChunkKind
    size: int | None = None

    def __post_init__(self):
        if self.kind == ChunkKind.FIXED_SIZE and (self.size is None or self.size <= 0):
            raise ValueError(f"fixed_size chunking needs a positive size, got {self.size}")

    @classmethod
    def paragraph(cls) -> "ChunkStrategy":
        return cls(ChunkKind.PARAGRAPH)

    @classmethod
    def sentence(cls) -> "ChunkStrategy":
        return cls(ChunkKind.SENTENCE)

    @classmethod
    def fixed_size(cls, size: int) -> "ChunkStrategy":
        return cls(ChunkKind.FIXED_SIZE, size)

    @classmethod
    def whole_file(cls) -> "ChunkStrategy":
        return cls(ChunkKind.WHOLE_FILE)

    def describe(self) -> str:
        if self.kind == ChunkKind.FIXED_SIZE:
            return f"{self.kind.value}({self.size})"
        return self.kind.value


def _split_on(text: str, pattern: re.Pattern) -> list[tuple[int, int]]:
    """Return (start, end) spans between separator matches, whitespace-trimmed."""
    spans = []
    cursor = 0
    boundaries = [(m.start(), m.end()) for m in pattern.finditer(text)]
    boundaries.append((len(text), len(text)))

    for sep_start, sep_end in boundaries:
        segment = text[cursor:sep_start]
        stripped = segment.strip()
        if stripped:
            start = cursor + (len(segment) - len(segment.lstrip()))
            spans.append((start, start + len(stripped)))
        cursor = sep_end

    return spans


def chunk_text(
    text: str,
    strategy: ChunkStrategy | None = None,
    metadata: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """
    Split text into chunks according to a strategy.

    Args:
        text: Text to chunk
        strategy: Chunking strategy (defaults to paragraph splitting)
        metadata: Optional metadata to include in each chunk

    Returns:
        List of chunk dicts with:
            - chunk_index: int (0-based)
            - content: str
            - start_char: int
            - end_char: int
            - metadata: dict (if provided)

    Empty or whitespace-only chunks are dropped, so indices stay contiguous.
    """
    strategy = strategy or ChunkStrategy.paragraph()

    if not text or not text.strip():
        return []

    if strategy.kind == ChunkKind.PARAGRAPH:
        spans = _split_on(text, _PARAGRAPH_BREAK)
    elif strategy.kind == ChunkKind.SENTENCE:
        spans = _split_on(text, _SENTENCE_BREAK)
    elif strategy.kind == ChunkKind.FIXED_SIZE:
        # No overlap: every n characters
        spans = [
            (start, min(start + strategy.size, len(text)))
            for start in range(0, len(text), strategy.size)
        ]
        spans = [(s, e) for s, e in spans if text[s:e].strip()]
    else:
        spans = [(0, len(text))]

    return [
        {
            "chunk_index": index,
            "content": text[start:end],
            "start_char": start,
            "end_char": end,
            "metadata": metadata or {},
        }
        for index, (start, end) in enumerate(spans)
    ]
