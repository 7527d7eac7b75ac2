"""Error taxonomy shared by the ingestion and chat pipelines.

Adapters translate backend-specific exceptions into these classes with
``raise ... from exc`` so callers only ever reason about one hierarchy.
"""

from __future__ import annotations


class DocChatError(Exception):
    """Base class for every error raised by :mod:`docchat_rag`."""


class ValidationError(DocChatError):
    """Invalid input or configuration (chunking bounds, empty uploads, …)."""


class NotFoundError(DocChatError):
    """A document or chat does not exist."""


class AccessDeniedError(DocChatError):
    """The resource exists but belongs to another owner."""


class UpstreamUnavailableError(DocChatError):
    """A provider or the vector store was unreachable or misconfigured.

    Retryable by the caller; adapters never retry internally.
    """


class ProcessingFailure(DocChatError):
    """An ingestion step failed. Recorded on the document as ``FAILED``."""


class ExtractionError(ProcessingFailure):
    """Text could not be extracted (unsupported or corrupt input)."""


class GenerationFailure(DocChatError):
    """The completion call for a chat turn failed."""


class IllegalTransitionError(DocChatError):
    """A document status change that the state machine does not allow."""

    def __init__(self, current: object, target: object) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Illegal document status transition: {current} -> {target}")
