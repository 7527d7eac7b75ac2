"""Shared pytest configuration and fixtures.

Everything here runs without Chroma, an LLM server or a database server:
SQLite in memory for the relational store plus in-process fakes for the
vector store, the embedder and the chat model.
"""

from __future__ import annotations

import math
import threading
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pytest
from langchain_core.messages import BaseMessage, SystemMessage

from docchat_rag.chat.prompts import TITLE_SYSTEM_PROMPT
from docchat_rag.errors import UpstreamUnavailableError
from docchat_rag.ingestion.pipeline import IngestionPipeline
from docchat_rag.providers.base import CompletionOptions, CompletionProvider, EmbeddingProvider
from docchat_rag.retrieval.base import VectorStoreBase
from docchat_rag.retrieval.models import MetadataFilter, SearchHit, VectorPoint
from docchat_rag.storage.database import create_db_engine, create_session_factory, init_schema
from docchat_rag.storage.files import LocalFileStore
from docchat_rag.storage.models import Document
from docchat_rag.storage.sql import SqlChatRepository, SqlDocumentRepository

DIMENSION = 64


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fakes ───────────────────────────────────────────────────────────────


class FakeEmbedder(EmbeddingProvider):
    """Deterministic bag-of-words embedder.

    Every distinct word gets its own axis (until ``dimension`` words have
    been seen), so texts sharing words are similar and texts sharing none
    are orthogonal.  Any text containing ``fail_on`` raises like a
    timed-out embedding request.
    """

    def __init__(self, dimension: int = DIMENSION, *, fail_on: str | None = None) -> None:
        super().__init__(max_concurrency=4)
        self.dimension = dimension
        self.fail_on = fail_on
        self.calls: list[str] = []
        self._vocabulary: dict[str, int] = {}
        self._lock = threading.Lock()
        self.healthy = True

    def _axis(self, word: str) -> int:
        with self._lock:
            return self._vocabulary.setdefault(word, len(self._vocabulary) % self.dimension)

    def embed(self, text: str) -> list[float]:
        with self._lock:
            self.calls.append(text)
        if self.fail_on and self.fail_on in text:
            raise UpstreamUnavailableError(
                f"Embedding request failed: timed out on text containing {self.fail_on!r}"
            )
        vector = [0.0] * self.dimension
        for word in text.lower().split():
            vector[self._axis(word)] += 1.0
        norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector] if any(vector) else [1.0 / math.sqrt(self.dimension)] * self.dimension

    def health_check(self) -> bool:
        return self.healthy


class FakeLLM(CompletionProvider):
    """Scripted chat model; title requests are recognised by their system prompt."""

    def __init__(
        self,
        answer: str = "Here is what your documents say.",
        title: str = "Quarterly Report Summary",
    ) -> None:
        self.answer = answer
        self.title = title
        self.fail_answer = False
        self.fail_title = False
        self.calls: list[tuple[list[BaseMessage], CompletionOptions | None]] = []
        self.healthy = True

    @staticmethod
    def is_title_request(messages: Sequence[BaseMessage]) -> bool:
        return (
            bool(messages)
            and isinstance(messages[0], SystemMessage)
            and messages[0].content == TITLE_SYSTEM_PROMPT
        )

    def complete(
        self,
        messages: list[BaseMessage],
        options: CompletionOptions | None = None,
    ) -> str:
        self.calls.append((list(messages), options))
        if self.is_title_request(messages):
            if self.fail_title:
                raise UpstreamUnavailableError("Completion request failed: timed out")
            return self.title
        if self.fail_answer:
            raise UpstreamUnavailableError("Completion request failed: timed out")
        return self.answer

    @property
    def answer_calls(self) -> list[tuple[list[BaseMessage], CompletionOptions | None]]:
        return [c for c in self.calls if not self.is_title_request(c[0])]

    def list_models(self) -> list[str]:
        return ["llama3.2:latest", "nomic-embed-text:latest"]

    def health_check(self) -> bool:
        return self.healthy


class InMemoryVectorStore(VectorStoreBase):
    """Cosine-similarity store kept in a dict."""

    def __init__(self, dimension: int = DIMENSION) -> None:
        super().__init__("test-collection", dimension)
        self.points: dict[str, VectorPoint] = {}
        self.fail_search = False
        self.fail_upsert = False
        self.fail_delete = False

    def ensure_collection(self) -> None:
        return None

    def upsert(self, points: Sequence[VectorPoint]) -> None:
        if self.fail_upsert:
            raise UpstreamUnavailableError("Vector upsert failed: connection refused")
        for p in points:
            self._check_dimension(p.vector)
        for p in points:
            self.points[p.id] = p

    def _matching(self, filters: list[MetadataFilter] | None) -> list[VectorPoint]:
        return [
            p for p in self.points.values()
            if all(f.matches(p.payload.flat()) for f in filters or [])
        ]

    def search(
        self,
        vector: list[float],
        *,
        limit: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[SearchHit]:
        if self.fail_search:
            raise UpstreamUnavailableError("Vector search failed: connection refused")
        self._check_dimension(vector)
        hits = [
            SearchHit(id=p.id, score=_cosine(vector, p.vector), payload=p.payload)
            for p in self._matching(filters)
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:limit]

    def delete_by_filter(self, filters: list[MetadataFilter]) -> None:
        if self.fail_delete:
            raise UpstreamUnavailableError("Vector delete failed: connection refused")
        for p in self._matching(filters):
            del self.points[p.id]

    def delete_by_ids(self, ids: Sequence[str]) -> None:
        for vid in ids:
            self.points.pop(vid, None)

    def count(self, filters: list[MetadataFilter] | None = None) -> int:
        return len(self._matching(filters))

    def get_info(self) -> dict[str, Any]:
        return {
            "name": self.collection_name,
            "dimension": self.dimension,
            "distance": "cosine",
            "points_count": len(self.points),
            "backend": "memory",
        }

    def health_check(self) -> bool:
        return True


def _cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a)) or 1.0
    nb = math.sqrt(sum(y * y for y in b)) or 1.0
    return dot / (na * nb)


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def session_factory():
    engine = create_db_engine("sqlite://")
    init_schema(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture()
def documents(session_factory) -> SqlDocumentRepository:
    return SqlDocumentRepository(session_factory)


@pytest.fixture()
def chats(session_factory) -> SqlChatRepository:
    return SqlChatRepository(session_factory)


@pytest.fixture()
def file_store(tmp_path: Path) -> LocalFileStore:
    return LocalFileStore(tmp_path / "uploads")


@pytest.fixture()
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture()
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture()
def pipeline(documents, vector_store, embedder, file_store) -> IngestionPipeline:
    return IngestionPipeline(
        documents, vector_store, embedder, file_store, chunk_size=1000, chunk_overlap=200
    )


@pytest.fixture()
def three_paragraph_text() -> str:
    """Three ~900-character paragraphs: exactly three chunks at 1000/200."""
    return "\n\n".join(" ".join([word] * 150) for word in ("alpha", "beta", "gamma"))


@pytest.fixture()
def make_document(documents, file_store) -> Callable[..., Document]:
    """Store bytes and create a ``PROCESSING`` document row for them."""

    def _make(
        text: str | bytes,
        *,
        owner_id: str = "user-1",
        filename: str = "notes.txt",
        mime_type: str = "text/plain",
    ) -> Document:
        data = text.encode("utf-8") if isinstance(text, str) else text
        key = file_store.save(filename, data)
        return documents.create(
            owner_id=owner_id,
            filename=filename,
            storage_key=key,
            mime_type=mime_type,
            size_bytes=len(data),
        )

    return _make
