"""Unit tests for the chunker module."""

import pytest

from docchat_rag.errors import ValidationError
from docchat_rag.ingestion.chunker import chunk_text


def test_chunk_text_splits_long_text() -> None:
    """A text longer than chunk_size should be split, every chunk within bounds."""
    long_text = "word " * 500  # ~2500 chars
    chunks = chunk_text(long_text, chunk_size=256, chunk_overlap=32)
    assert len(chunks) > 1
    assert all(len(c) <= 256 for c in chunks)


def test_short_text_is_a_single_chunk() -> None:
    assert chunk_text("Short text.", chunk_size=256, chunk_overlap=0) == ["Short text."]


@pytest.mark.parametrize("text", ["", "   ", "\n\n\t"])
def test_blank_input_yields_no_chunks(text: str) -> None:
    assert chunk_text(text) == []


def test_paragraphs_become_separate_chunks(three_paragraph_text: str) -> None:
    chunks = chunk_text(three_paragraph_text, chunk_size=1000, chunk_overlap=200)
    assert len(chunks) == 3
    assert chunks[0].startswith("alpha")
    assert chunks[1].startswith("beta")
    assert chunks[2].startswith("gamma")


def test_consecutive_chunks_overlap() -> None:
    text = " ".join(f"w{i:03d}" for i in range(400))
    chunks = chunk_text(text, chunk_size=200, chunk_overlap=50)
    assert len(chunks) > 2
    for previous, current in zip(chunks, chunks[1:]):
        assert current.split()[0] in previous.split()


def test_chunking_is_deterministic() -> None:
    text = "Sentence one. Sentence two.\nLine two.\n\nParagraph two. " * 40
    assert chunk_text(text, 300, 60) == chunk_text(text, 300, 60)


@pytest.mark.parametrize(("size", "overlap"), [(100, 100), (100, 150), (100, -1)])
def test_invalid_bounds_raise(size: int, overlap: int) -> None:
    with pytest.raises(ValidationError):
        chunk_text("some text", chunk_size=size, chunk_overlap=overlap)
