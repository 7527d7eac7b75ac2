"""Unit tests for the SQL repositories and the upload file store."""

from __future__ import annotations

import threading

import pytest
from sqlalchemy.exc import IntegrityError

from docchat_rag.config import PLACEHOLDER_CHAT_TITLE
from docchat_rag.errors import AccessDeniedError, IllegalTransitionError, NotFoundError, ValidationError
from docchat_rag.ingestion.status import DocumentStatus
from docchat_rag.storage.base import NewChunk
from docchat_rag.storage.database import create_db_engine, create_session_factory, init_schema
from docchat_rag.storage.files import LocalFileStore
from docchat_rag.storage.sql import SqlChatRepository
from docchat_rag.storage.models import MessageRole, new_id


def _chunks(document_id: str, n: int) -> list[NewChunk]:
    return [
        NewChunk(id=new_id(), chunk_index=i, content=f"chunk {i}", vector_id=f"{document_id}-chunk-{i}")
        for i in range(n)
    ]


# ── Documents ──────────────────────────────────────────────────────────


class TestDocumentRepository:
    def test_create_starts_processing(self, documents) -> None:
        doc = documents.create(owner_id="u1", filename="a.txt", storage_key="k", mime_type="text/plain", size_bytes=3)
        stored = documents.get(doc.id)
        assert stored.status is DocumentStatus.PROCESSING
        assert stored.error is None
        assert stored.processed_at is None

    def test_get_owned(self, documents) -> None:
        doc = documents.create(owner_id="u1", filename="a", storage_key="k", mime_type="", size_bytes=1)
        assert documents.get_owned(doc.id, "u1").id == doc.id
        with pytest.raises(AccessDeniedError):
            documents.get_owned(doc.id, "u2")
        with pytest.raises(NotFoundError):
            documents.get_owned("missing", "u1")

    def test_status_transitions_are_enforced(self, documents) -> None:
        doc = documents.create(owner_id="u1", filename="a", storage_key="k", mime_type="", size_bytes=1)
        documents.set_status(doc.id, DocumentStatus.FAILED, error="bad input")
        with pytest.raises(IllegalTransitionError):
            documents.set_status(doc.id, DocumentStatus.PROCESSED)
        assert documents.get(doc.id).error == "bad input"

        documents.set_status(doc.id, DocumentStatus.PROCESSING, reset=True)
        done = documents.set_status(doc.id, DocumentStatus.PROCESSED)
        assert done.error is None
        assert done.processed_at is not None

    def test_list_with_chunk_counts(self, documents) -> None:
        a = documents.create(owner_id="u1", filename="a", storage_key="ka", mime_type="", size_bytes=1)
        b = documents.create(owner_id="u1", filename="b", storage_key="kb", mime_type="", size_bytes=1)
        documents.create(owner_id="u2", filename="c", storage_key="kc", mime_type="", size_bytes=1)
        documents.add_chunks(a.id, _chunks(a.id, 2))

        listed = documents.list_with_chunk_counts("u1")

        assert {d.id: n for d, n in listed} == {a.id: 2, b.id: 0}
        assert [d.id for d, _ in listed] == [b.id, a.id]

    def test_chunk_index_is_unique_per_document(self, documents) -> None:
        doc = documents.create(owner_id="u1", filename="a", storage_key="k", mime_type="", size_bytes=1)
        documents.add_chunks(doc.id, _chunks(doc.id, 1))
        duplicate = NewChunk(id=new_id(), chunk_index=0, content="again", vector_id="other")
        with pytest.raises(IntegrityError):
            documents.add_chunks(doc.id, [duplicate])

    def test_delete_chunks_and_document(self, documents) -> None:
        doc = documents.create(owner_id="u1", filename="a", storage_key="k", mime_type="", size_bytes=1)
        documents.add_chunks(doc.id, _chunks(doc.id, 3))
        assert [c.chunk_index for c in documents.list_chunks(doc.id)] == [0, 1, 2]

        assert documents.delete_chunks(doc.id) == 3
        assert documents.count_chunks(doc.id) == 0

        documents.delete(doc.id)
        with pytest.raises(NotFoundError):
            documents.get(doc.id)
        with pytest.raises(NotFoundError):
            documents.delete(doc.id)


# ── Chats ──────────────────────────────────────────────────────────────


class TestChatRepository:
    def test_messages_keep_insertion_order(self, chats) -> None:
        chat = chats.create_chat("u1", PLACEHOLDER_CHAT_TITLE)
        for i in range(5):
            chats.add_message(chat.id, MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT, f"m{i}")
        messages = chats.list_messages(chat.id)
        assert [m.content for m in messages] == ["m0", "m1", "m2", "m3", "m4"]
        assert [m.seq for m in messages] == [1, 2, 3, 4, 5]

    def test_recent_messages_window(self, chats) -> None:
        chat = chats.create_chat("u1", PLACEHOLDER_CHAT_TITLE)
        added = [chats.add_message(chat.id, MessageRole.USER, f"m{i}") for i in range(6)]

        recent = chats.recent_messages(chat.id, 3, exclude_ids=[added[-1].id])

        assert [m.content for m in recent] == ["m2", "m3", "m4"]
        assert chats.recent_messages(chat.id, 0) == []

    def test_title_written_only_while_placeholder(self, chats) -> None:
        chat = chats.create_chat("u1", PLACEHOLDER_CHAT_TITLE)
        assert chats.set_title_if_placeholder(chat.id, "First", PLACEHOLDER_CHAT_TITLE) is True
        assert chats.set_title_if_placeholder(chat.id, "Second", PLACEHOLDER_CHAT_TITLE) is False
        assert chats.get_chat(chat.id).title == "First"

    @pytest.mark.parametrize("stored", ["", "   ", "new chat", "  NEW CHAT "])
    def test_placeholder_match_ignores_case_and_blanks(self, chats, stored) -> None:
        chat = chats.create_chat("u1", stored)
        assert chats.set_title_if_placeholder(chat.id, "Budget", PLACEHOLDER_CHAT_TITLE) is True
        assert chats.get_chat(chat.id).title == "Budget"

    def test_custom_title_is_kept(self, chats) -> None:
        chat = chats.create_chat("u1", "New Chat about budgets")
        assert chats.set_title_if_placeholder(chat.id, "Budget", PLACEHOLDER_CHAT_TITLE) is False

    def test_add_message_to_missing_chat(self, chats) -> None:
        with pytest.raises(NotFoundError):
            chats.add_message("missing", MessageRole.USER, "hi")

    def test_concurrent_appends_get_distinct_seq(self, tmp_path) -> None:
        engine = create_db_engine(f"sqlite:///{tmp_path / 'chat.db'}")
        init_schema(engine)
        repo = SqlChatRepository(create_session_factory(engine))
        chat = repo.create_chat("u1", "t")
        errors: list[Exception] = []

        def append(worker: int) -> None:
            for i in range(20):
                try:
                    repo.add_message(chat.id, MessageRole.USER, f"w{worker}-m{i}")
                except Exception as exc:
                    errors.append(exc)

        threads = [threading.Thread(target=append, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert errors == []
        assert [m.seq for m in repo.list_messages(chat.id)] == list(range(1, 161))
        engine.dispose()

    def test_list_chats_most_recent_first(self, chats) -> None:
        older = chats.create_chat("u1", "older")
        newer = chats.create_chat("u1", "newer")
        chats.create_chat("u2", "foreign")
        chats.touch(older.id)
        assert [c.title for c in chats.list_chats("u1")] == ["older", "newer"]
        assert newer.id in {c.id for c in chats.list_chats("u1")}

    def test_delete_chat_removes_messages(self, chats) -> None:
        chat = chats.create_chat("u1", "t")
        chats.add_message(chat.id, MessageRole.USER, "hi")
        chats.delete_chat(chat.id)
        assert chats.count_messages(chat.id) == 0
        with pytest.raises(NotFoundError):
            chats.get_chat(chat.id)

    def test_get_owned(self, chats) -> None:
        chat = chats.create_chat("u1", "t")
        with pytest.raises(AccessDeniedError):
            chats.get_owned(chat.id, "u2")


# ── File store ─────────────────────────────────────────────────────────


class TestLocalFileStore:
    def test_round_trip(self, tmp_path) -> None:
        store = LocalFileStore(tmp_path)
        key = store.save("my report.pdf", b"data")
        assert " " not in key
        assert key.endswith("-my_report.pdf")
        assert store.read(key) == b"data"

    def test_same_name_twice_gets_distinct_keys(self, tmp_path) -> None:
        store = LocalFileStore(tmp_path)
        assert store.save("a.txt", b"1") != store.save("a.txt", b"2")

    def test_delete_missing_returns_false(self, tmp_path) -> None:
        store = LocalFileStore(tmp_path)
        key = store.save("a.txt", b"1")
        assert store.delete(key) is True
        assert store.delete(key) is False

    def test_read_missing_raises(self, tmp_path) -> None:
        with pytest.raises(NotFoundError):
            LocalFileStore(tmp_path).read("nope")

    def test_path_traversal_rejected(self, tmp_path) -> None:
        with pytest.raises(ValidationError):
            LocalFileStore(tmp_path / "inner").read("../secret")
