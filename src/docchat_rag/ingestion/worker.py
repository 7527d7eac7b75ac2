"""Background execution of ingestion runs.

Uploads return as soon as the document row exists; the run itself goes
to a bounded ``ThreadPoolExecutor``.  Runs on the same document are
serialised by a per-document lock, so two reprocess requests execute one
after the other and the last one wins.  Deletion takes the same lock, so
it never interleaves with a run still writing chunks or vectors.  Every
future carries a done-callback that records ``FAILED`` if anything
escaped the pipeline.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor, wait
from contextlib import contextmanager

from docchat_rag.errors import NotFoundError
from docchat_rag.ingestion.pipeline import IngestionPipeline, IngestionResult
from docchat_rag.ingestion.status import DocumentStatus
from docchat_rag.storage.base import DocumentRepository

logger = logging.getLogger(__name__)


class IngestionWorker:
    """Bounded pool running :class:`IngestionPipeline` jobs.

    Parameters
    ----------
    pipeline:
        The pipeline to run.
    documents:
        Repository used by the failure supervisor.
    max_workers:
        Number of documents ingested concurrently.
    """

    def __init__(
        self,
        pipeline: IngestionPipeline,
        documents: DocumentRepository,
        *,
        max_workers: int = 2,
    ) -> None:
        self._pipeline = pipeline
        self._documents = documents
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ingest")
        # document id -> (lock, number of callers holding or waiting on it)
        self._locks: dict[str, tuple[threading.Lock, int]] = {}
        self._locks_guard = threading.Lock()
        self._pending: set[Future[IngestionResult]] = set()

    # -- public API -----------------------------------------------------------

    def submit(self, document_id: str) -> Future[IngestionResult]:
        """Queue the first ingestion of an uploaded document."""
        return self._submit(document_id, self._pipeline.start)

    def submit_reprocess(self, document_id: str) -> Future[IngestionResult]:
        """Queue a purge-and-reingest of an existing document."""
        return self._submit(document_id, self._pipeline.reprocess)

    def delete(self, document_id: str) -> None:
        """Delete a document in the calling thread, after any run on it has finished."""
        with self._exclusive(document_id):
            self._pipeline.delete_document(document_id)

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for every queued run; ``False`` if some are still going at *timeout*."""
        with self._locks_guard:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    # -- internals ------------------------------------------------------------

    @contextmanager
    def _exclusive(self, document_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock, users = self._locks.get(document_id, (None, 0))
            lock = lock or threading.Lock()
            self._locks[document_id] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                _, users = self._locks[document_id]
                if users == 1:
                    del self._locks[document_id]
                else:
                    self._locks[document_id] = (lock, users - 1)

    def _submit(
        self,
        document_id: str,
        job: Callable[[str], IngestionResult],
    ) -> Future[IngestionResult]:
        def run() -> IngestionResult:
            with self._exclusive(document_id):
                return job(document_id)

        future = self._pool.submit(run)
        with self._locks_guard:
            self._pending.add(future)
        future.add_done_callback(lambda f: self._supervise(document_id, f))
        logger.info("Queued %s for document %s", job.__name__, document_id)
        return future

    def _supervise(self, document_id: str, future: Future[IngestionResult]) -> None:
        try:
            self._record_failure(document_id, future)
        finally:
            with self._locks_guard:
                self._pending.discard(future)

    def _record_failure(self, document_id: str, future: Future[IngestionResult]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None:
            return

        logger.error(
            "Ingestion of document %s failed outside the pipeline",
            document_id,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        try:
            self._documents.set_status(document_id, DocumentStatus.FAILED, error=str(exc))
        except NotFoundError:
            logger.warning("Document %s was deleted before its failure was recorded", document_id)
        except Exception:
            logger.exception("Could not record failure for document %s", document_id)
