"""Prompt templates for the chat turn.

Keeping prompts in one place makes them easy to audit and version.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from docchat_rag.retrieval.models import RetrievedChunk
    from docchat_rag.storage.models import Message

MAX_TITLE_LENGTH = 100
CONTEXT_SEPARATOR = "\n\n---\n\n"

# ── 1. Answer generation ──────────────────────────────────────────────

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Provide clear, accurate, and concise responses."
)

CONTEXT_SYSTEM_TEMPLATE = """\
You are a helpful AI assistant with access to the user's documents.

When answering questions, use the following context from the user's documents:

{context}

Instructions:
- Answer questions based on the provided context when relevant
- If the context doesn't contain information to answer the question, say so
- Be accurate and cite which document you're referring to when possible
- If the question is not related to the documents, answer based on your general knowledge
- Keep responses clear and concise"""


def format_context(chunks: Sequence[RetrievedChunk]) -> str:
    """Render chunks as numbered ``[Document N: filename]`` sections."""
    sections = [
        f"[Document {i}: {chunk.filename or f'Document {i}'}]\n{chunk.content}"
        for i, chunk in enumerate(chunks, start=1)
    ]
    return CONTEXT_SEPARATOR.join(sections)


def build_system_prompt(context: str) -> str:
    if not context:
        return DEFAULT_SYSTEM_PROMPT
    return CONTEXT_SYSTEM_TEMPLATE.format(context=context)


def history_to_messages(history: Sequence[Message]) -> list[BaseMessage]:
    """Convert stored messages (oldest first) to LangChain messages."""
    converted: list[BaseMessage] = []
    for message in history:
        role = getattr(message.role, "value", message.role)
        if role == "assistant":
            converted.append(AIMessage(content=message.content))
        else:
            converted.append(HumanMessage(content=message.content))
    return converted


def build_chat_messages(
    user_text: str,
    context: str,
    history: Sequence[BaseMessage],
) -> list[BaseMessage]:
    """System prompt, then prior turns, then the new user message."""
    return [
        SystemMessage(content=build_system_prompt(context)),
        *history,
        HumanMessage(content=user_text),
    ]


# ── 2. Chat title ─────────────────────────────────────────────────────

TITLE_SYSTEM_PROMPT = (
    "Generate a short, concise title (max 6 words) for a chat that starts with "
    "this message. Only respond with the title, nothing else."
)


def build_title_prompt(first_message: str) -> list[BaseMessage]:
    return [
        SystemMessage(content=TITLE_SYSTEM_PROMPT),
        HumanMessage(content=first_message),
    ]


def clean_title(raw: str | None) -> str:
    """Reduce model output to a single-line title; ``""`` when nothing usable remains."""
    if not raw:
        return ""
    lines = [line.strip() for line in raw.strip().splitlines() if line.strip()]
    if not lines:
        return ""
    title = lines[0]
    if title.lower().startswith("title:"):
        title = title[len("title:"):].strip()
    title = title.strip("\"'`*# ").strip()
    return title[:MAX_TITLE_LENGTH]


def fallback_title(first_message: str, placeholder: str) -> str:
    return first_message.strip()[:MAX_TITLE_LENGTH] or placeholder


def is_placeholder_title(title: str | None, placeholder: str) -> bool:
    """Blank titles count as the placeholder; comparison ignores case and edge whitespace."""
    normalised = (title or "").strip().lower()
    return not normalised or normalised == placeholder.strip().lower()
