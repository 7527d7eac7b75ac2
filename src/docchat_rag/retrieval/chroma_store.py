"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import chromadb

from docchat_rag.errors import UpstreamUnavailableError, ValidationError
from docchat_rag.retrieval.base import VectorStoreBase
from docchat_rag.retrieval.models import (
    ChunkMetadata,
    ChunkPayload,
    MetadataFilter,
    SearchHit,
    VectorPoint,
)

logger = logging.getLogger(__name__)

DISTANCE = "cosine"


def _build_chroma_where(filters: list[MetadataFilter]) -> dict[str, Any] | None:
    """Convert a list of :class:`MetadataFilter` to Chroma ``where`` syntax."""
    if not filters:
        return None

    _OP_MAP = {
        "eq": "$eq",
        "ne": "$ne",
        "in": "$in",
        "nin": "$nin",
    }

    clauses: list[dict[str, Any]] = []
    for f in filters:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _payload_from_record(content: str | None, meta: dict[str, Any] | None) -> ChunkPayload:
    meta = meta or {}
    return ChunkPayload(
        chunk_id=str(meta.get("chunk_id", "")),
        document_id=str(meta.get("document_id", "")),
        owner_id=str(meta.get("owner_id", "")),
        content=content or "",
        metadata=ChunkMetadata(
            filename=str(meta.get("filename", "unknown")),
            chunk_index=int(meta.get("chunk_index", 0)),
        ),
    )


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store.

    Chunk content is stored as the Chroma document; the remaining payload
    fields are flattened into the record metadata so they can be filtered
    on.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    dimension:
        Embedding dimension recorded in the collection metadata.
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    client:
        Pre-built Chroma client; mainly for tests.
    """

    def __init__(
        self,
        collection_name: str,
        *,
        dimension: int,
        host: str = "localhost",
        port: int = 8000,
        client: Any | None = None,
    ) -> None:
        super().__init__(collection_name, dimension)
        self._host = host
        self._port = port
        self._client = client
        self._collection: Any | None = None

    # -- connection -----------------------------------------------------------

    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                self._client = chromadb.HttpClient(host=self._host, port=self._port)
            except Exception as exc:
                raise UpstreamUnavailableError(
                    f"Cannot connect to Chroma at {self._host}:{self._port}: {exc}"
                ) from exc
        return self._client

    @property
    def collection(self) -> Any:
        if self._collection is None:
            self.ensure_collection()
        return self._collection

    # -- VectorStoreBase overrides --------------------------------------------

    def ensure_collection(self) -> None:
        try:
            existing = {
                c if isinstance(c, str) else c.name for c in self.client.list_collections()
            }
            if self.collection_name in existing:
                collection = self.client.get_collection(self.collection_name)
            else:
                logger.info(
                    "Creating collection %s (dimension=%d, distance=%s)",
                    self.collection_name,
                    self.dimension,
                    DISTANCE,
                )
                collection = self.client.create_collection(
                    self.collection_name,
                    metadata={"hnsw:space": DISTANCE, "dimension": self.dimension},
                )
        except UpstreamUnavailableError:
            raise
        except Exception as exc:
            raise UpstreamUnavailableError(f"Chroma collection setup failed: {exc}") from exc

        recorded = (collection.metadata or {}).get("dimension")
        if recorded is not None and int(recorded) != self.dimension:
            raise ValidationError(
                f"Collection {self.collection_name!r} has dimension {recorded}, "
                f"configured embedding dimension is {self.dimension}"
            )
        self._collection = collection

    def upsert(self, points: Sequence[VectorPoint]) -> None:
        if not points:
            return
        for point in points:
            self._check_dimension(point.vector, what=f"Vector {point.id}")

        collection = self.collection
        try:
            collection.upsert(
                ids=[p.id for p in points],
                embeddings=[p.vector for p in points],
                documents=[p.payload.content for p in points],
                metadatas=[p.payload.flat() for p in points],
            )
        except Exception as exc:
            raise UpstreamUnavailableError(f"Chroma upsert failed: {exc}") from exc
        logger.debug("Upserted %d vectors into %s", len(points), self.collection_name)

    def search(
        self,
        vector: list[float],
        *,
        limit: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[SearchHit]:
        self._check_dimension(vector, what="Query vector")
        where = _build_chroma_where(filters) if filters else None

        collection = self.collection
        try:
            results = collection.query(
                query_embeddings=[vector],
                n_results=limit,
                where=where,
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise UpstreamUnavailableError(f"Chroma query failed: {exc}") from exc

        ids = (results.get("ids") or [[]])[0]
        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        hits = [
            # Cosine distance back to cosine similarity.
            SearchHit(id=vid, score=1.0 - float(dist), payload=_payload_from_record(content, meta))
            for vid, content, meta, dist in zip(ids, docs, metas, distances)
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits

    def delete_by_filter(self, filters: list[MetadataFilter]) -> None:
        if not filters:
            raise ValidationError("Refusing to delete vectors without a filter")
        collection = self.collection
        try:
            collection.delete(where=_build_chroma_where(filters))
        except Exception as exc:
            raise UpstreamUnavailableError(f"Chroma delete failed: {exc}") from exc

    def delete_by_ids(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        collection = self.collection
        try:
            collection.delete(ids=list(ids))
        except Exception as exc:
            raise UpstreamUnavailableError(f"Chroma delete failed: {exc}") from exc

    def count(self, filters: list[MetadataFilter] | None = None) -> int:
        collection = self.collection
        try:
            if not filters:
                return int(collection.count())
            found = collection.get(where=_build_chroma_where(filters), include=[])
        except Exception as exc:
            raise UpstreamUnavailableError(f"Chroma count failed: {exc}") from exc
        return len(found.get("ids") or [])

    def get_info(self) -> dict[str, Any]:
        return {
            "name": self.collection_name,
            "dimension": self.dimension,
            "distance": DISTANCE,
            "points_count": self.count(),
            "backend": "chroma",
        }

    def health_check(self) -> bool:
        try:
            self.client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
