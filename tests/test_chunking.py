"""Tests for text chunking strategies."""

import pytest

from rigger.core.chunking import ChunkKind, ChunkStrategy, chunk_text


def test_fixed_size_splits_without_overlap():
    """1200 chars at size 500 gives 500, 500, 200."""
    text = "A" * 1200
    chunks = chunk_text(text, ChunkStrategy.fixed_size(500))

    assert [len(c["content"]) for c in chunks] == [500, 500, 200]
    assert [c["start_char"] for c in chunks] == [0, 500, 1000]
    assert chunks[0]["end_char"] == chunks[1]["start_char"]


def test_fixed_size_exact_boundary():
    chunks = chunk_text("B" * 50, ChunkStrategy.fixed_size(50))
    assert len(chunks) == 1


def test_fixed_size_rejects_non_positive_size():
    with pytest.raises(ValueError, match="positive size"):
        ChunkStrategy.fixed_size(0)


def test_paragraph_splits_on_blank_lines():
    text = "First paragraph.\n\nSecond paragraph.\n\n\n\nThird paragraph."
    chunks = chunk_text(text, ChunkStrategy.paragraph())

    assert [c["content"] for c in chunks] == [
        "First paragraph.",
        "Second paragraph.",
        "Third paragraph.",
    ]


def test_paragraph_offsets_point_at_content():
    text = "  Intro line\n\n   Body text  "
    chunks = chunk_text(text, ChunkStrategy.paragraph())

    for chunk in chunks:
        assert text[chunk["start_char"]:chunk["end_char"]] == chunk["content"]
    assert chunks[1]["content"] == "Body text"


def test_paragraph_is_default_strategy():
    chunks = chunk_text("One.\n\nTwo.")
    assert len(chunks) == 2


def test_sentence_splits_on_terminators():
    text = "Users sign in with SSO. Admins can revoke sessions! Is audit logging required? Yes."
    chunks = chunk_text(text, ChunkStrategy.sentence())

    assert [c["content"] for c in chunks] == [
        "Users sign in with SSO.",
        "Admins can revoke sessions!",
        "Is audit logging required?",
        "Yes.",
    ]


def test_whole_file_returns_single_chunk():
    text = "Line one.\n\nLine two. Line three."
    chunks = chunk_text(text, ChunkStrategy.whole_file())

    assert len(chunks) == 1
    assert chunks[0]["content"] == text


def test_empty_text_returns_no_chunks():
    for strategy in (
        ChunkStrategy.paragraph(),
        ChunkStrategy.sentence(),
        ChunkStrategy.fixed_size(10),
        ChunkStrategy.whole_file(),
    ):
        assert chunk_text("", strategy) == []
        assert chunk_text("   \n\n  ", strategy) == []


def test_chunk_indices_are_sequential():
    text = "\n\n".join(f"Paragraph {i}." for i in range(6))
    chunks = chunk_text(text, ChunkStrategy.paragraph())

    assert [c["chunk_index"] for c in chunks] == list(range(6))


def test_metadata_is_attached():
    chunks = chunk_text("a\n\nb", metadata={"source": "prd-1"})
    assert all(c["metadata"] == {"source": "prd-1"} for c in chunks)


def test_describe():
    assert ChunkStrategy.fixed_size(500).describe() == "fixed_size(500)"
    assert ChunkStrategy.sentence().describe() == "sentence"
    assert ChunkStrategy.whole_file().kind == ChunkKind.WHOLE_FILE
