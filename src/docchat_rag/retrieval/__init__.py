"""
Retrieval — vector storage, owner-scoped search and context models.

The vector store sits behind a small interface so the ingestion pipeline
and the chat engine never need to know which DB is backing retrieval.

Public surface
--------------
- :class:`SemanticRetriever` — owner-scoped search returning :class:`RetrievedChunk`.
- :class:`VectorStoreBase` — abstract backend.
- :class:`ChromaVectorStore` — default Chroma backend.
- :class:`MetadataFilter`, :class:`VectorPoint`, :class:`SearchHit` — data models.
"""

from docchat_rag.retrieval.base import VectorStoreBase
from docchat_rag.retrieval.models import (
    ChunkMetadata,
    ChunkPayload,
    MetadataFilter,
    RetrievedChunk,
    SearchHit,
    VectorPoint,
)
from docchat_rag.retrieval.retriever import SemanticRetriever

__all__ = [
    "ChromaVectorStore",
    "ChunkMetadata",
    "ChunkPayload",
    "MetadataFilter",
    "RetrievedChunk",
    "SearchHit",
    "SemanticRetriever",
    "VectorPoint",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from docchat_rag.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
