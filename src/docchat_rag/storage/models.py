"""SQLAlchemy ORM models for documents, chunks, chats and messages."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum as PyEnum
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

from docchat_rag.ingestion.status import DocumentStatus

Base = declarative_base()


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, PyEnum):
    USER = "user"
    ASSISTANT = "assistant"


def _enum_values(enum_cls: type[PyEnum]) -> list[str]:
    return [member.value for member in enum_cls]


class Document(Base):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(255), nullable=False, index=True)
    filename = Column(Text, nullable=False)
    storage_key = Column(Text, nullable=False)
    mime_type = Column(Text, nullable=False, default="")
    size_bytes = Column(BigInteger, nullable=False, default=0)
    status = Column(
        Enum(DocumentStatus, name="document_status", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=DocumentStatus.PROCESSING,
    )
    error = Column(Text, nullable=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class DocumentChunk(Base):
    __tablename__ = "document_chunks"

    id = Column(String(36), primary_key=True, default=new_id)
    document_id = Column(
        String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    vector_id = Column(String(128), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_document_chunks_doc_idx"),
    )


class Chat(Base):
    __tablename__ = "chats"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(255), nullable=False, index=True)
    title = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=new_id)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    # Per-chat insertion order; timestamps alone can tie.
    seq = Column(Integer, nullable=False)
    role = Column(
        Enum(MessageRole, name="message_role", native_enum=False, values_callable=_enum_values),
        nullable=False,
    )
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (Index("ix_messages_chat_seq", "chat_id", "seq", unique=True),)
