"""Text chunking strategies."""

from __future__ import annotations

from langchain_text_splitters import RecursiveCharacterTextSplitter

from docchat_rag.errors import ValidationError

# Paragraph, line, sentence, word, then raw characters.
SEPARATORS = ["\n\n", "\n", ". ", " ", ""]


def validate_chunking(chunk_size: int, chunk_overlap: int) -> None:
    """Raise :class:`ValidationError` unless ``chunk_size > chunk_overlap >= 0``."""
    if chunk_overlap < 0:
        raise ValidationError(f"chunk_overlap must be >= 0, got {chunk_overlap}")
    if chunk_size <= chunk_overlap:
        raise ValidationError(
            f"chunk_size ({chunk_size}) must be greater than chunk_overlap ({chunk_overlap})"
        )


def chunk_text(
    text: str,
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
) -> list[str]:
    """Split *text* into ordered, overlapping chunks for embedding.

    Parameters
    ----------
    text:
        Extracted document text.
    chunk_size:
        Maximum number of characters per chunk.
    chunk_overlap:
        Number of overlapping characters between consecutive chunks.

    Returns
    -------
    list[str]
        Chunks in document order. Empty or whitespace-only input yields
        an empty list.
    """
    validate_chunking(chunk_size, chunk_overlap)
    if not text or not text.strip():
        return []

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        length_function=len,
        separators=SEPARATORS,
    )
    return [chunk for chunk in splitter.split_text(text) if chunk.strip()]
