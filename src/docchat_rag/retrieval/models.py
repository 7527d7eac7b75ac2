"""Domain models for vector entries, search hits and retrieved context."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class MetadataFilter(BaseModel):
    """Declarative payload filter for vector-store queries.

    Attributes
    ----------
    field:
        The payload key to filter on (e.g. ``"owner_id"``, ``"document_id"``).
    operator:
        Comparison operator, one of ``eq``, ``ne``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    # -- helpers for common filters ------------------------------------------

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def not_equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="ne", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)

    def matches(self, payload: dict[str, Any]) -> bool:
        """Evaluate the filter against a flat payload dict."""
        actual = payload.get(self.field)
        if self.operator == "eq":
            return actual == self.value
        if self.operator == "ne":
            return actual != self.value
        if self.operator == "in":
            return actual in (self.value or [])
        if self.operator == "nin":
            return actual not in (self.value or [])
        raise ValueError(f"Unsupported filter operator: {self.operator!r}")


class ChunkMetadata(BaseModel):
    filename: str
    chunk_index: int


class ChunkPayload(BaseModel):
    """Payload stored next to every chunk vector."""

    chunk_id: str
    document_id: str
    owner_id: str
    content: str
    metadata: ChunkMetadata

    def flat(self) -> dict[str, Any]:
        """Flatten to the scalar key/value form filters operate on."""
        return {
            "chunk_id": self.chunk_id,
            "document_id": self.document_id,
            "owner_id": self.owner_id,
            "filename": self.metadata.filename,
            "chunk_index": self.metadata.chunk_index,
        }


class VectorPoint(BaseModel):
    id: str
    vector: list[float]
    payload: ChunkPayload


class SearchHit(BaseModel):
    """One ranked search result; ``score`` is cosine similarity, higher is closer."""

    id: str
    score: float
    payload: ChunkPayload


class RetrievedChunk(BaseModel):
    """A chunk selected as chat context, in the shape the prompt builder needs."""

    content: str
    filename: str
    document_id: str
    chunk_index: int
    score: float
    vector_id: str = Field(default="")

    @classmethod
    def from_hit(cls, hit: SearchHit) -> RetrievedChunk:
        return cls(
            content=hit.payload.content,
            filename=hit.payload.metadata.filename,
            document_id=hit.payload.document_id,
            chunk_index=hit.payload.metadata.chunk_index,
            score=hit.score,
            vector_id=hit.id,
        )

    def __str__(self) -> str:  # noqa: D105
        return f"[{self.filename}#{self.chunk_index}] {self.content[:120]}"
