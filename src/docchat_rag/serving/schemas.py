"""Request / response schemas of the HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from docchat_rag.chat.engine import ChatTurnResult
from docchat_rag.storage.models import Chat, Document, Message

UPLOAD_ACCEPTED_MESSAGE = "Document uploaded and processing started"


class DocumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    filename: str
    mime_type: str
    size_bytes: int
    status: str
    error: str | None = None
    uploaded_at: datetime
    processed_at: datetime | None = None
    updated_at: datetime
    chunk_count: int = 0

    @classmethod
    def from_row(cls, document: Document, chunk_count: int = 0) -> DocumentOut:
        return cls(
            id=document.id,
            filename=document.filename,
            mime_type=document.mime_type,
            size_bytes=document.size_bytes,
            status=getattr(document.status, "value", document.status),
            error=document.error,
            uploaded_at=document.uploaded_at,
            processed_at=document.processed_at,
            updated_at=document.updated_at,
            chunk_count=chunk_count,
        )


class UploadResponse(BaseModel):
    message: str = UPLOAD_ACCEPTED_MESSAGE
    document: DocumentOut


class ReprocessResponse(BaseModel):
    message: str = "Document reprocessing started"
    document_id: str


class MessageOut(BaseModel):
    id: str
    role: str
    content: str
    created_at: datetime

    @classmethod
    def from_row(cls, message: Message) -> MessageOut:
        return cls(
            id=message.id,
            role=getattr(message.role, "value", message.role),
            content=message.content,
            created_at=message.created_at,
        )


class ChatOut(BaseModel):
    id: str
    title: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, chat: Chat) -> ChatOut:
        return cls(
            id=chat.id, title=chat.title, created_at=chat.created_at, updated_at=chat.updated_at
        )


class ChatDetailOut(ChatOut):
    messages: list[MessageOut] = Field(default_factory=list)


class CreateChatRequest(BaseModel):
    title: str | None = None


class SendMessageRequest(BaseModel):
    content: str


class SendMessageResponse(BaseModel):
    user_message: MessageOut
    assistant_message: MessageOut
    title: str

    @classmethod
    def from_result(cls, result: ChatTurnResult) -> SendMessageResponse:
        return cls(
            user_message=MessageOut.from_row(result.user_message),
            assistant_message=MessageOut.from_row(result.assistant_message),
            title=result.title,
        )


class ErrorResponse(BaseModel):
    error: str
    detail: str


class VectorInfoResponse(BaseModel):
    collection: dict[str, Any]
    owner_vectors: int
