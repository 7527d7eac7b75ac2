"""Owner-scoped semantic retriever.

Usage::

    retriever = SemanticRetriever(store, embedder, default_k=5)
    chunks    = retriever.search("What is the refund policy?", owner_id="u-1")
    for c in chunks:
        print(c.filename, c.score, c.content[:80])
"""

from __future__ import annotations

import logging

from docchat_rag.providers.base import EmbeddingProvider
from docchat_rag.retrieval.base import VectorStoreBase
from docchat_rag.retrieval.models import MetadataFilter, RetrievedChunk

logger = logging.getLogger(__name__)


class SemanticRetriever:
    """Embeds a query and searches the caller's vectors only.

    Parameters
    ----------
    store:
        A concrete vector-store backend.
    embedder:
        Provider used to embed the query text.
    default_k:
        Default number of results returned by :meth:`search`.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: EmbeddingProvider,
        *,
        default_k: int = 5,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.default_k = default_k

    def search(self, query: str, *, owner_id: str, k: int | None = None) -> list[RetrievedChunk]:
        """Return up to *k* chunks owned by *owner_id*, most similar first.

        Errors from the embedder or the store propagate; callers decide
        whether a failed retrieval is fatal.
        """
        k = k or self.default_k
        vector = self._embedder.embed(query)
        hits = self._store.search(
            vector,
            limit=k,
            filters=[MetadataFilter.equals("owner_id", owner_id)],
        )

        chunks: list[RetrievedChunk] = []
        for hit in hits:
            if hit.payload.owner_id != owner_id:
                logger.warning("Dropping vector %s returned for another owner", hit.id)
                continue
            chunks.append(RetrievedChunk.from_hit(hit))

        chunks.sort(key=lambda c: c.score, reverse=True)
        logger.debug("Retrieved %d chunks for owner %s", len(chunks), owner_id)
        return chunks
