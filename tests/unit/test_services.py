"""Unit tests for the owner-facing services, configuration and wiring."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError as PydanticValidationError

from docchat_rag.bootstrap import build_container
from docchat_rag.chat.engine import RagQueryEngine
from docchat_rag.config import PLACEHOLDER_CHAT_TITLE, Settings
from docchat_rag.errors import AccessDeniedError, ValidationError
from docchat_rag.ingestion.status import DocumentStatus
from docchat_rag.ingestion.worker import IngestionWorker
from docchat_rag.retrieval.chroma_store import ChromaVectorStore
from docchat_rag.retrieval.retriever import SemanticRetriever
from docchat_rag.services.chats import ChatService
from docchat_rag.services.documents import DocumentService


@pytest.fixture()
def document_service(documents, file_store, pipeline):
    worker = IngestionWorker(pipeline, documents, max_workers=1)
    yield DocumentService(documents, file_store, worker, max_file_size=1024)
    worker.shutdown(wait=True)


@pytest.fixture()
def chat_service(chats, vector_store, embedder, llm) -> ChatService:
    engine = RagQueryEngine(chats, SemanticRetriever(vector_store, embedder), llm)
    return ChatService(chats, engine)


# ── DocumentService ────────────────────────────────────────────────────


class TestDocumentService:
    def test_upload_then_ingest(self, document_service, documents) -> None:
        doc, future = document_service.upload("u1", "a.txt", "text/plain", b"hello world")
        assert doc.status is DocumentStatus.PROCESSING
        assert future.result(timeout=10).status is DocumentStatus.PROCESSED
        stored, count = document_service.get_document("u1", doc.id)
        assert stored.status is DocumentStatus.PROCESSED
        assert count == 1

    @pytest.mark.parametrize(
        ("filename", "data"),
        [(None, b"x"), ("  ", b"x"), ("a.txt", b""), ("a.txt", b"x" * 1025)],
    )
    def test_upload_validation(self, document_service, filename, data) -> None:
        with pytest.raises(ValidationError):
            document_service.upload("u1", filename, "text/plain", data)

    def test_operations_are_owner_checked(self, document_service) -> None:
        doc, future = document_service.upload("u1", "a.txt", "text/plain", b"hello")
        future.result(timeout=10)
        with pytest.raises(AccessDeniedError):
            document_service.get_document("u2", doc.id)
        with pytest.raises(AccessDeniedError):
            document_service.delete_document("u2", doc.id)
        with pytest.raises(AccessDeniedError):
            document_service.reprocess_document("u2", doc.id)

    def test_reprocess(self, document_service) -> None:
        doc, future = document_service.upload("u1", "a.txt", "text/plain", b"hello")
        future.result(timeout=10)
        result = document_service.reprocess_document("u1", doc.id).result(timeout=10)
        assert result.status is DocumentStatus.PROCESSED

    def test_list_documents(self, document_service) -> None:
        _, future = document_service.upload("u1", "a.txt", "text/plain", b"hello")
        future.result(timeout=10)
        listed = document_service.list_documents("u1")
        assert [(d.filename, n) for d, n in listed] == [("a.txt", 1)]
        assert document_service.list_documents("u2") == []

    def test_delete_goes_through_worker(self, documents, file_store) -> None:
        worker = MagicMock()
        service = DocumentService(documents, file_store, worker)
        doc = documents.create(
            owner_id="u1", filename="a.txt", storage_key="k", mime_type="text/plain", size_bytes=1
        )
        service.delete_document("u1", doc.id)
        worker.delete.assert_called_once_with(doc.id)


# ── ChatService ────────────────────────────────────────────────────────


class TestChatService:
    @pytest.mark.parametrize("title", [None, "", "   "])
    def test_blank_title_gets_placeholder(self, chat_service, title) -> None:
        assert chat_service.create_chat("u1", title).title == PLACEHOLDER_CHAT_TITLE

    def test_send_and_count(self, chat_service) -> None:
        chat = chat_service.create_chat("u1")
        chat_service.send_message("u1", chat.id, "hello")
        assert chat_service.message_count("u1", chat.id) == 2
        _, messages = chat_service.get_chat("u1", chat.id)
        assert [m.content for m in messages][0] == "hello"

    def test_foreign_chat_operations(self, chat_service) -> None:
        chat = chat_service.create_chat("u1")
        for call in (chat_service.get_chat, chat_service.delete_chat, chat_service.message_count):
            with pytest.raises(AccessDeniedError):
                call("u2", chat.id)


# ── Settings & wiring ──────────────────────────────────────────────────


class TestSettings:
    def test_defaults(self) -> None:
        s = Settings()
        assert (s.chunk_size, s.chunk_overlap, s.retrieval_top_k) == (1000, 200, 5)
        assert s.embedding_dimension == 768
        assert s.resolved_embedding_base_url == s.llm_base_url

    def test_env_override(self, monkeypatch) -> None:
        monkeypatch.setenv("CHUNK_SIZE", "500")
        monkeypatch.setenv("CHUNK_OVERLAP", "50")
        assert Settings().chunk_size == 500

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"chunk_size": 100, "chunk_overlap": 100},
            {"chunk_size": 100, "chunk_overlap": -1},
            {"embedding_dimension": 0},
        ],
    )
    def test_invalid_settings(self, kwargs) -> None:
        with pytest.raises(PydanticValidationError):
            Settings(**kwargs)


def test_build_container_wires_components(tmp_path, vector_store, embedder, llm) -> None:
    settings = Settings(database_url="sqlite://", upload_dir=str(tmp_path), retrieval_top_k=3, history_window=4)
    container = build_container(settings, vector_store=vector_store, embedder=embedder, llm=llm)
    try:
        assert container.query_engine.top_k == 3
        assert container.query_engine.history_window == 4
        assert container.pipeline.chunk_size == 1000
        assert container.vector_store is vector_store
    finally:
        container.close()


def test_build_container_ensures_collection(tmp_path, embedder, llm) -> None:
    store = MagicMock()
    settings = Settings(database_url="sqlite://", upload_dir=str(tmp_path))
    container = build_container(settings, vector_store=store, embedder=embedder, llm=llm)
    container.close()
    store.ensure_collection.assert_called_once_with()


def test_build_container_rejects_dimension_mismatch(tmp_path, embedder, llm) -> None:
    collection = MagicMock()
    collection.metadata = {"hnsw:space": "cosine", "dimension": 384}
    client = MagicMock()
    client.list_collections.return_value = ["documents_collection"]
    client.get_collection.return_value = collection
    store = ChromaVectorStore("documents_collection", dimension=768, client=client)
    settings = Settings(database_url="sqlite://", upload_dir=str(tmp_path))

    with pytest.raises(ValidationError, match="dimension"):
        build_container(settings, vector_store=store, embedder=embedder, llm=llm)
