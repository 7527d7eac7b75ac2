"""Document status state machine.

::

    PROCESSING ──► PROCESSED
        │
        └────────► FAILED

    any ──(reprocess, after purge)──► PROCESSING

Repositories never assign ``status`` directly; they ask
:func:`plan_transition` for a :class:`StatusChange` and apply it inside
one transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from docchat_rag.errors import IllegalTransitionError

DEFAULT_FAILURE_MESSAGE = "Document processing failed"


class DocumentStatus(str, Enum):
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


# PROCESSING -> PROCESSING is the idempotent "mark processing" of step 1.
_ALLOWED: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PROCESSING: frozenset(
        {DocumentStatus.PROCESSING, DocumentStatus.PROCESSED, DocumentStatus.FAILED}
    ),
    DocumentStatus.PROCESSED: frozenset(),
    DocumentStatus.FAILED: frozenset(),
}


@dataclass(frozen=True)
class StatusChange:
    """Field values a document takes after a legal transition."""

    status: DocumentStatus
    error: str | None
    processed_at: datetime | None


def can_transition(current: DocumentStatus, target: DocumentStatus, *, reset: bool = False) -> bool:
    if reset and target is DocumentStatus.PROCESSING:
        return True
    return target in _ALLOWED[current]


def plan_transition(
    current: DocumentStatus,
    target: DocumentStatus,
    *,
    error: str | None = None,
    reset: bool = False,
    now: datetime | None = None,
) -> StatusChange:
    """Validate ``current -> target`` and return the resulting field values.

    Parameters
    ----------
    current / target:
        Present and requested status.
    error:
        Failure text, only kept for ``FAILED``.
    reset:
        Set by reprocess: allows any status to go back to ``PROCESSING``.
    now:
        Clock override for ``processed_at``.

    Raises
    ------
    IllegalTransitionError
        When the state machine forbids the move (e.g. ``FAILED -> PROCESSED``).
    """
    current = DocumentStatus(current)
    target = DocumentStatus(target)
    if not can_transition(current, target, reset=reset):
        raise IllegalTransitionError(current.value, target.value)

    if target is DocumentStatus.PROCESSED:
        return StatusChange(target, None, now or datetime.now(timezone.utc))
    if target is DocumentStatus.FAILED:
        return StatusChange(target, error or DEFAULT_FAILURE_MESSAGE, None)
    return StatusChange(target, None, None)
