"""SQLAlchemy implementations of the repository interfaces."""

from __future__ import annotations

import logging
from collections.abc import Collection, Sequence

from sqlalchemy import delete, func, insert, or_, select, update

from docchat_rag.errors import AccessDeniedError, NotFoundError
from docchat_rag.ingestion.status import DocumentStatus, plan_transition
from docchat_rag.storage.base import ChatRepository, DocumentRepository, NewChunk
from docchat_rag.storage.database import SessionFactory
from docchat_rag.storage.models import (
    Chat,
    Document,
    DocumentChunk,
    Message,
    MessageRole,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)


class SqlDocumentRepository(DocumentRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def create(
        self,
        *,
        owner_id: str,
        filename: str,
        storage_key: str,
        mime_type: str,
        size_bytes: int,
    ) -> Document:
        now = utcnow()
        document = Document(
            id=new_id(),
            owner_id=owner_id,
            filename=filename,
            storage_key=storage_key,
            mime_type=mime_type or "",
            size_bytes=size_bytes,
            status=DocumentStatus.PROCESSING,
            error=None,
            uploaded_at=now,
            processed_at=None,
            updated_at=now,
        )
        with self._session_factory() as session, session.begin():
            session.add(document)
        logger.info("Document created with ID: %s (owner=%s)", document.id, owner_id)
        return document

    def get(self, document_id: str) -> Document:
        with self._session_factory() as session:
            document = session.get(Document, document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        return document

    def get_owned(self, document_id: str, owner_id: str) -> Document:
        document = self.get(document_id)
        if document.owner_id != owner_id:
            raise AccessDeniedError(f"Document {document_id} does not belong to the requesting user")
        return document

    def list_with_chunk_counts(self, owner_id: str) -> list[tuple[Document, int]]:
        stmt = (
            select(Document, func.count(DocumentChunk.id))
            .outerjoin(DocumentChunk, DocumentChunk.document_id == Document.id)
            .where(Document.owner_id == owner_id)
            .group_by(Document.id)
            .order_by(Document.uploaded_at.desc())
        )
        with self._session_factory() as session:
            return [(document, int(count)) for document, count in session.execute(stmt).all()]

    def set_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        error: str | None = None,
        reset: bool = False,
    ) -> Document:
        with self._session_factory() as session, session.begin():
            document = session.get(Document, document_id, with_for_update=True)
            if document is None:
                raise NotFoundError(f"Document {document_id} not found")

            change = plan_transition(document.status, status, error=error, reset=reset)
            document.status = change.status
            document.error = change.error
            document.processed_at = change.processed_at
            document.updated_at = utcnow()

        logger.debug("Document %s status -> %s", document_id, status.value)
        return document

    def add_chunks(self, document_id: str, chunks: Sequence[NewChunk]) -> list[DocumentChunk]:
        now = utcnow()
        rows = [
            DocumentChunk(
                id=chunk.id,
                document_id=document_id,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                vector_id=chunk.vector_id,
                created_at=now,
            )
            for chunk in chunks
        ]
        with self._session_factory() as session, session.begin():
            session.add_all(rows)
        return rows

    def list_chunks(self, document_id: str) -> list[DocumentChunk]:
        stmt = (
            select(DocumentChunk)
            .where(DocumentChunk.document_id == document_id)
            .order_by(DocumentChunk.chunk_index)
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt))

    def count_chunks(self, document_id: str) -> int:
        stmt = select(func.count(DocumentChunk.id)).where(DocumentChunk.document_id == document_id)
        with self._session_factory() as session:
            return int(session.scalar(stmt) or 0)

    def delete_chunks(self, document_id: str) -> int:
        with self._session_factory() as session, session.begin():
            result = session.execute(
                delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
            )
        return result.rowcount or 0

    def delete(self, document_id: str) -> None:
        with self._session_factory() as session, session.begin():
            session.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document_id))
            result = session.execute(delete(Document).where(Document.id == document_id))
            if not result.rowcount:
                raise NotFoundError(f"Document {document_id} not found")


class SqlChatRepository(ChatRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def create_chat(self, owner_id: str, title: str) -> Chat:
        now = utcnow()
        chat = Chat(id=new_id(), owner_id=owner_id, title=title, created_at=now, updated_at=now)
        with self._session_factory() as session, session.begin():
            session.add(chat)
        logger.info("Created chat %s for user %s", chat.id, owner_id)
        return chat

    def get_chat(self, chat_id: str) -> Chat:
        with self._session_factory() as session:
            chat = session.get(Chat, chat_id)
        if chat is None:
            raise NotFoundError(f"Chat {chat_id} not found")
        return chat

    def get_owned(self, chat_id: str, owner_id: str) -> Chat:
        chat = self.get_chat(chat_id)
        if chat.owner_id != owner_id:
            raise AccessDeniedError(f"Chat {chat_id} does not belong to the requesting user")
        return chat

    def list_chats(self, owner_id: str) -> list[Chat]:
        stmt = select(Chat).where(Chat.owner_id == owner_id).order_by(Chat.updated_at.desc())
        with self._session_factory() as session:
            return list(session.scalars(stmt))

    def delete_chat(self, chat_id: str) -> None:
        with self._session_factory() as session, session.begin():
            session.execute(delete(Message).where(Message.chat_id == chat_id))
            result = session.execute(delete(Chat).where(Chat.id == chat_id))
            if not result.rowcount:
                raise NotFoundError(f"Chat {chat_id} not found")
        logger.info("Deleted chat %s", chat_id)

    def add_message(self, chat_id: str, role: MessageRole, content: str) -> Message:
        """Append a message with the next ``seq`` of its chat.

        ``seq`` is computed inside the INSERT and the chat row is locked on
        backends with ``FOR UPDATE``; concurrent writers on one chat get
        distinct values.
        """
        message_id = new_id()
        next_seq = (
            select(func.coalesce(func.max(Message.seq), 0) + 1)
            .where(Message.chat_id == chat_id)
            .scalar_subquery()
        )
        with self._session_factory() as session, session.begin():
            if session.get(Chat, chat_id, with_for_update=True) is None:
                raise NotFoundError(f"Chat {chat_id} not found")
            session.execute(
                insert(Message).values(
                    id=message_id,
                    chat_id=chat_id,
                    seq=next_seq,
                    role=MessageRole(role),
                    content=content,
                    created_at=utcnow(),
                )
            )
            message = session.get(Message, message_id)
        return message

    def list_messages(self, chat_id: str) -> list[Message]:
        stmt = select(Message).where(Message.chat_id == chat_id).order_by(Message.seq)
        with self._session_factory() as session:
            return list(session.scalars(stmt))

    def recent_messages(
        self,
        chat_id: str,
        limit: int,
        *,
        exclude_ids: Collection[str] = (),
    ) -> list[Message]:
        if limit <= 0:
            return []
        stmt = select(Message).where(Message.chat_id == chat_id)
        if exclude_ids:
            stmt = stmt.where(Message.id.not_in(list(exclude_ids)))
        stmt = stmt.order_by(Message.seq.desc()).limit(limit)
        with self._session_factory() as session:
            newest_first = list(session.scalars(stmt))
        newest_first.reverse()
        return newest_first

    def count_messages(self, chat_id: str) -> int:
        stmt = select(func.count(Message.id)).where(Message.chat_id == chat_id)
        with self._session_factory() as session:
            return int(session.scalar(stmt) or 0)

    def set_title_if_placeholder(self, chat_id: str, title: str, placeholder: str) -> bool:
        stored = func.lower(func.trim(Chat.title))
        with self._session_factory() as session, session.begin():
            result = session.execute(
                update(Chat)
                .where(Chat.id == chat_id, or_(stored == "", stored == placeholder.strip().lower()))
                .values(title=title, updated_at=utcnow())
            )
        return bool(result.rowcount)

    def touch(self, chat_id: str) -> None:
        with self._session_factory() as session, session.begin():
            session.execute(update(Chat).where(Chat.id == chat_id).values(updated_at=utcnow()))
