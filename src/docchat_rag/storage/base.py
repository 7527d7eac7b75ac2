"""Abstract repositories the pipelines depend on.

The ingestion pipeline and chat engine only see these narrow
interfaces; :mod:`docchat_rag.storage.sql` provides the SQLAlchemy
implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Collection, Sequence
from dataclasses import dataclass

from docchat_rag.ingestion.status import DocumentStatus
from docchat_rag.storage.models import Chat, Document, DocumentChunk, Message, MessageRole


@dataclass(frozen=True)
class NewChunk:
    """A chunk row about to be written by the ingestion pipeline."""

    id: str
    chunk_index: int
    content: str
    vector_id: str


class DocumentRepository(ABC):
    """Persistence of :class:`Document` and :class:`DocumentChunk` rows."""

    @abstractmethod
    def create(
        self,
        *,
        owner_id: str,
        filename: str,
        storage_key: str,
        mime_type: str,
        size_bytes: int,
    ) -> Document:
        """Insert a new document in ``PROCESSING``."""
        ...

    @abstractmethod
    def get(self, document_id: str) -> Document:
        """Return the document or raise ``NotFoundError``."""
        ...

    @abstractmethod
    def get_owned(self, document_id: str, owner_id: str) -> Document:
        """Like :meth:`get`, raising ``AccessDeniedError`` on owner mismatch."""
        ...

    @abstractmethod
    def list_with_chunk_counts(self, owner_id: str) -> list[tuple[Document, int]]:
        """Owner's documents, newest upload first, with chunk counts."""
        ...

    @abstractmethod
    def set_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        error: str | None = None,
        reset: bool = False,
    ) -> Document:
        """Atomically apply a state-machine transition."""
        ...

    @abstractmethod
    def add_chunks(self, document_id: str, chunks: Sequence[NewChunk]) -> list[DocumentChunk]:
        """Insert all chunk rows in one transaction."""
        ...

    @abstractmethod
    def list_chunks(self, document_id: str) -> list[DocumentChunk]: ...

    @abstractmethod
    def count_chunks(self, document_id: str) -> int: ...

    @abstractmethod
    def delete_chunks(self, document_id: str) -> int:
        """Delete every chunk row of the document; return how many."""
        ...

    @abstractmethod
    def delete(self, document_id: str) -> None:
        """Delete the document row (and any remaining chunk rows)."""
        ...


class ChatRepository(ABC):
    """Persistence of :class:`Chat` and append-only :class:`Message` rows."""

    @abstractmethod
    def create_chat(self, owner_id: str, title: str) -> Chat: ...

    @abstractmethod
    def get_chat(self, chat_id: str) -> Chat: ...

    @abstractmethod
    def get_owned(self, chat_id: str, owner_id: str) -> Chat: ...

    @abstractmethod
    def list_chats(self, owner_id: str) -> list[Chat]:
        """Owner's chats, most recently updated first."""
        ...

    @abstractmethod
    def delete_chat(self, chat_id: str) -> None: ...

    @abstractmethod
    def add_message(self, chat_id: str, role: MessageRole, content: str) -> Message: ...

    @abstractmethod
    def list_messages(self, chat_id: str) -> list[Message]:
        """All messages, oldest first."""
        ...

    @abstractmethod
    def recent_messages(
        self,
        chat_id: str,
        limit: int,
        *,
        exclude_ids: Collection[str] = (),
    ) -> list[Message]:
        """The *limit* newest messages, returned oldest first."""
        ...

    @abstractmethod
    def count_messages(self, chat_id: str) -> int: ...

    @abstractmethod
    def set_title_if_placeholder(self, chat_id: str, title: str, placeholder: str) -> bool:
        """Replace the title only while it is blank or equals *placeholder*
        (ignoring case and surrounding whitespace).

        Returns ``True`` when the title was written.
        """
        ...

    @abstractmethod
    def touch(self, chat_id: str) -> None:
        """Bump ``updated_at`` to now."""
        ...
