"""Chat-turn state, shared across all graph nodes.

One :class:`ChatTurnState` flows through the nodes of
:class:`~docchat_rag.chat.engine.RagQueryEngine`.  Each node returns only
the keys it changed and advances ``stage``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, TypedDict

from langchain_core.messages import BaseMessage

from docchat_rag.retrieval.models import RetrievedChunk


class ChatTurnStage(str, Enum):
    """Progress of one turn.

    ::

        awaiting_user_message ─► user_persisted ─► context_retrieved
            ─► response_generated ─► assistant_persisted ─► (titled)

    A turn can only fail before ``assistant_persisted``.
    """

    AWAITING_USER_MESSAGE = "awaiting_user_message"
    USER_PERSISTED = "user_persisted"
    CONTEXT_RETRIEVED = "context_retrieved"
    RESPONSE_GENERATED = "response_generated"
    ASSISTANT_PERSISTED = "assistant_persisted"
    TITLED = "titled"


class ChatTurnState(TypedDict, total=False):
    """Typed state for one user turn.

    Attributes
    ----------
    chat_id / owner_id / user_text:
        The request.
    chat:
        The ``Chat`` row, loaded and owner-checked by ``load_chat``.
    user_message / assistant_message:
        Persisted ``Message`` rows.
    history:
        Prior messages (oldest first, new user message excluded) as
        LangChain messages.
    context_chunks:
        Retrieved chunks, highest score first; empty when retrieval
        failed or found nothing.
    response:
        Raw completion text.
    title:
        The chat title after the turn.
    stage:
        Last stage reached.
    """

    chat_id: str
    owner_id: str
    user_text: str
    chat: Any
    user_message: Any
    assistant_message: Any
    history: list[BaseMessage]
    context_chunks: list[RetrievedChunk]
    response: str
    title: str
    stage: ChatTurnStage
