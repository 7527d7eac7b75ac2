"""Owner-checked document and chat operations used by the HTTP layer."""

from docchat_rag.services.chats import ChatService
from docchat_rag.services.documents import DocumentService

__all__ = ["ChatService", "DocumentService"]
