"""Abstract base class for vector-store backends.

Adding a new backend (Qdrant, pgvector …) only requires subclassing
:class:`VectorStoreBase`.  The ingestion pipeline and retriever are
backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from docchat_rag.errors import ValidationError
from docchat_rag.retrieval.models import MetadataFilter, SearchHit, VectorPoint


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    dimension:
        Length every stored and queried vector must have.
    """

    def __init__(self, collection_name: str, dimension: int) -> None:
        self.collection_name = collection_name
        self.dimension = dimension

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def ensure_collection(self) -> None:
        """Create the collection if absent (cosine distance).

        Raises ``ValidationError`` when an existing collection was created
        with a different dimension.
        """
        ...

    @abstractmethod
    def upsert(self, points: Sequence[VectorPoint]) -> None:
        """Insert or replace *points* by id, as one batch."""
        ...

    @abstractmethod
    def search(
        self,
        vector: list[float],
        *,
        limit: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[SearchHit]:
        """Return at most *limit* hits, highest cosine similarity first.

        Parameters
        ----------
        vector:
            Dense query vector.
        limit:
            Number of results to return.
        filters:
            Optional payload filters, combined with AND.
        """
        ...

    @abstractmethod
    def delete_by_filter(self, filters: list[MetadataFilter]) -> None: ...

    @abstractmethod
    def delete_by_ids(self, ids: Sequence[str]) -> None: ...

    @abstractmethod
    def count(self, filters: list[MetadataFilter] | None = None) -> int: ...

    @abstractmethod
    def get_info(self) -> dict[str, Any]:
        """Collection name, dimension, distance and point count."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- helpers --------------------------------------------------------------

    def _check_dimension(self, vector: Sequence[float], what: str = "vector") -> None:
        if len(vector) != self.dimension:
            raise ValidationError(
                f"{what} has dimension {len(vector)}, collection "
                f"{self.collection_name!r} expects {self.dimension}"
            )
