"""RAG query engine — one user turn as a LangGraph workflow.

Graph topology::

      ┌───────────┐
      │ load_chat │            ← owner check, input validation
      └─────┬─────┘
            ▼
    ┌──────────────────────┐
    │ persist_user_message │
    └─────┬────────────────┘
            ▼
    ┌──────────────────┐
    │ retrieve_context │       ← failures degrade to empty context
    └─────┬────────────┘
            ▼
    ┌───────────────────┐
    │ generate_response │      ← failures raise GenerationFailure
    └─────┬─────────────┘
            ▼
    ┌───────────────────────────┐   first exchange   ┌────────────────┐
    │ persist_assistant_message ├───────────────────►│ generate_title │
    └─────┬─────────────────────┘                    └───────┬────────┘
            ▼                                                 │
      ┌────────────┐◄───────────────────────────────────────────┘
      │ touch_chat │
      └─────┬──────┘
            ▼
         [ END ]

Node contract: each node takes the full :class:`ChatTurnState` and
returns only the keys it changed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from langgraph.graph import END, StateGraph

from docchat_rag.chat.prompts import (
    build_chat_messages,
    build_title_prompt,
    clean_title,
    fallback_title,
    format_context,
    history_to_messages,
    is_placeholder_title,
)
from docchat_rag.chat.state import ChatTurnStage, ChatTurnState
from docchat_rag.config import PLACEHOLDER_CHAT_TITLE
from docchat_rag.errors import GenerationFailure, ValidationError
from docchat_rag.providers.base import CompletionOptions, CompletionProvider
from docchat_rag.retrieval.models import RetrievedChunk
from docchat_rag.retrieval.retriever import SemanticRetriever
from docchat_rag.storage.base import ChatRepository
from docchat_rag.storage.models import Message, MessageRole

logger = logging.getLogger(__name__)

TITLE_OPTIONS = CompletionOptions(temperature=0.5, top_p=0.9, max_tokens=20)


@dataclass
class ChatTurnResult:
    user_message: Message
    assistant_message: Message
    title: str
    context_chunks: list[RetrievedChunk] = field(default_factory=list)
    stage: ChatTurnStage = ChatTurnStage.ASSISTANT_PERSISTED


class RagQueryEngine:
    """Answers one user turn: retrieve → assemble context → generate → persist.

    Parameters
    ----------
    chats:
        Chat / message repository.
    retriever:
        Owner-scoped semantic retriever.
    llm:
        Completion provider for answers and titles.
    top_k:
        Number of chunks retrieved per turn.
    history_window:
        Number of prior messages sent with each request.
    generation_options:
        Sampling options for the answer.
    title_options:
        Sampling options for the title completion.
    placeholder_title:
        Title a chat carries until its first exchange.
    """

    def __init__(
        self,
        chats: ChatRepository,
        retriever: SemanticRetriever,
        llm: CompletionProvider,
        *,
        top_k: int = 5,
        history_window: int = 10,
        generation_options: CompletionOptions | None = None,
        title_options: CompletionOptions | None = None,
        placeholder_title: str = PLACEHOLDER_CHAT_TITLE,
    ) -> None:
        self._chats = chats
        self._retriever = retriever
        self._llm = llm
        self.top_k = top_k
        self.history_window = history_window
        self.generation_options = generation_options or CompletionOptions()
        self.title_options = title_options or TITLE_OPTIONS
        self.placeholder_title = placeholder_title
        self._graph = self._build_graph()

    # -- public API -----------------------------------------------------------

    def send_message(self, chat_id: str, owner_id: str, user_text: str) -> ChatTurnResult:
        """Run one turn and return both persisted messages.

        Raises
        ------
        NotFoundError / AccessDeniedError
            Unknown chat, or a chat of another owner.
        ValidationError
            Blank *user_text*.
        GenerationFailure
            The completion call failed; the user message stays persisted.
        """
        final = self._graph.invoke(
            {
                "chat_id": chat_id,
                "owner_id": owner_id,
                "user_text": user_text,
                "stage": ChatTurnStage.AWAITING_USER_MESSAGE,
            }
        )
        return ChatTurnResult(
            user_message=final["user_message"],
            assistant_message=final["assistant_message"],
            title=final["title"],
            context_chunks=list(final.get("context_chunks", [])),
            stage=final["stage"],
        )

    # -- graph ----------------------------------------------------------------

    def _build_graph(self) -> Any:
        workflow = StateGraph(ChatTurnState)

        workflow.add_node("load_chat", self.load_chat)
        workflow.add_node("persist_user_message", self.persist_user_message)
        workflow.add_node("retrieve_context", self.retrieve_context)
        workflow.add_node("generate_response", self.generate_response)
        workflow.add_node("persist_assistant_message", self.persist_assistant_message)
        workflow.add_node("generate_title", self.generate_title)
        workflow.add_node("touch_chat", self.touch_chat)

        workflow.set_entry_point("load_chat")
        workflow.add_edge("load_chat", "persist_user_message")
        workflow.add_edge("persist_user_message", "retrieve_context")
        workflow.add_edge("retrieve_context", "generate_response")
        workflow.add_edge("generate_response", "persist_assistant_message")
        workflow.add_conditional_edges(
            "persist_assistant_message",
            self.should_title,
            {
                "generate_title": "generate_title",
                "touch_chat": "touch_chat",
            },
        )
        workflow.add_edge("generate_title", "touch_chat")
        workflow.add_edge("touch_chat", END)

        return workflow.compile()

    # ── 1. LOAD CHAT ──────────────────────────────────────────────────

    def load_chat(self, state: ChatTurnState) -> dict[str, Any]:
        chat = self._chats.get_owned(state["chat_id"], state["owner_id"])
        if not (state.get("user_text") or "").strip():
            raise ValidationError("Message content must not be empty")
        return {"chat": chat, "title": chat.title}

    # ── 2. PERSIST USER MESSAGE ───────────────────────────────────────

    def persist_user_message(self, state: ChatTurnState) -> dict[str, Any]:
        message = self._chats.add_message(state["chat_id"], MessageRole.USER, state["user_text"])
        prior = self._chats.recent_messages(
            state["chat_id"], self.history_window, exclude_ids=[message.id]
        )
        return {
            "user_message": message,
            "history": history_to_messages(prior),
            "stage": ChatTurnStage.USER_PERSISTED,
        }

    # ── 3. RETRIEVE CONTEXT ───────────────────────────────────────────

    def retrieve_context(self, state: ChatTurnState) -> dict[str, Any]:
        try:
            chunks = self._retriever.search(
                state["user_text"], owner_id=state["owner_id"], k=self.top_k
            )
        except Exception as exc:
            logger.warning("Context retrieval failed: %s", exc)
            chunks = []
        return {"context_chunks": chunks, "stage": ChatTurnStage.CONTEXT_RETRIEVED}

    # ── 4. GENERATE RESPONSE ──────────────────────────────────────────

    def generate_response(self, state: ChatTurnState) -> dict[str, Any]:
        context = format_context(state.get("context_chunks", []))
        messages = build_chat_messages(state["user_text"], context, state.get("history", []))
        try:
            response = self._llm.complete(messages, self.generation_options)
        except Exception as exc:
            logger.error("AI generation failed for chat %s: %s", state["chat_id"], exc)
            raise GenerationFailure("Failed to generate response") from exc
        return {"response": response, "stage": ChatTurnStage.RESPONSE_GENERATED}

    # ── 5. PERSIST ASSISTANT MESSAGE ──────────────────────────────────

    def persist_assistant_message(self, state: ChatTurnState) -> dict[str, Any]:
        message = self._chats.add_message(
            state["chat_id"], MessageRole.ASSISTANT, state["response"]
        )
        return {"assistant_message": message, "stage": ChatTurnStage.ASSISTANT_PERSISTED}

    def should_title(self, state: ChatTurnState) -> str:
        """Route to titling only on the first exchange of a placeholder-titled chat."""
        first_exchange = not state.get("history")
        if first_exchange and is_placeholder_title(state.get("title"), self.placeholder_title):
            return "generate_title"
        return "touch_chat"

    # ── 6. GENERATE TITLE ─────────────────────────────────────────────

    def generate_title(self, state: ChatTurnState) -> dict[str, Any]:
        first_message = state["user_text"]
        try:
            raw = self._llm.complete(build_title_prompt(first_message), self.title_options)
            title = clean_title(raw)
        except Exception as exc:
            logger.warning("Failed to generate chat title: %s", exc)
            title = ""
        if not title:
            title = fallback_title(first_message, self.placeholder_title)

        try:
            written = self._chats.set_title_if_placeholder(
                state["chat_id"], title, self.placeholder_title
            )
        except Exception as exc:
            logger.warning("Failed to store chat title for %s: %s", state["chat_id"], exc)
            return {}

        if not written:
            # Another turn titled the chat first.
            return {"title": self._chats.get_chat(state["chat_id"]).title}
        return {"title": title, "stage": ChatTurnStage.TITLED}

    # ── 7. TOUCH CHAT ─────────────────────────────────────────────────

    def touch_chat(self, state: ChatTurnState) -> dict[str, Any]:
        try:
            self._chats.touch(state["chat_id"])
        except Exception as exc:
            logger.warning("Failed to update chat %s timestamp: %s", state["chat_id"], exc)
        return {}
