"""Owner-facing chat operations."""

from __future__ import annotations

from docchat_rag.chat.engine import ChatTurnResult, RagQueryEngine
from docchat_rag.config import PLACEHOLDER_CHAT_TITLE
from docchat_rag.storage.base import ChatRepository
from docchat_rag.storage.models import Chat, Message


class ChatService:
    def __init__(
        self,
        chats: ChatRepository,
        engine: RagQueryEngine,
        *,
        placeholder_title: str = PLACEHOLDER_CHAT_TITLE,
    ) -> None:
        self._chats = chats
        self._engine = engine
        self.placeholder_title = placeholder_title

    def create_chat(self, owner_id: str, title: str | None = None) -> Chat:
        """Blank or missing titles get the placeholder, replaced after the first exchange."""
        return self._chats.create_chat(owner_id, (title or "").strip() or self.placeholder_title)

    def list_chats(self, owner_id: str) -> list[Chat]:
        return self._chats.list_chats(owner_id)

    def get_chat(self, owner_id: str, chat_id: str) -> tuple[Chat, list[Message]]:
        chat = self._chats.get_owned(chat_id, owner_id)
        return chat, self._chats.list_messages(chat_id)

    def delete_chat(self, owner_id: str, chat_id: str) -> None:
        self._chats.get_owned(chat_id, owner_id)
        self._chats.delete_chat(chat_id)

    def send_message(self, owner_id: str, chat_id: str, content: str) -> ChatTurnResult:
        return self._engine.send_message(chat_id, owner_id, content)

    def message_count(self, owner_id: str, chat_id: str) -> int:
        self._chats.get_owned(chat_id, owner_id)
        return self._chats.count_messages(chat_id)
