"""
Chat — retrieval-augmented answering of user turns.

- :class:`RagQueryEngine` — the LangGraph turn workflow.
- :class:`ChatTurnResult`, :class:`ChatTurnStage` — its outputs.
"""

from docchat_rag.chat.engine import ChatTurnResult, RagQueryEngine
from docchat_rag.chat.state import ChatTurnStage, ChatTurnState

__all__ = ["ChatTurnResult", "ChatTurnStage", "ChatTurnState", "RagQueryEngine"]
