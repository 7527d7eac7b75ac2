"""Owner-facing document operations."""

from __future__ import annotations

import logging
from concurrent.futures import Future

from docchat_rag.errors import ValidationError
from docchat_rag.ingestion.pipeline import IngestionResult
from docchat_rag.ingestion.worker import IngestionWorker
from docchat_rag.storage.base import DocumentRepository
from docchat_rag.storage.files import LocalFileStore
from docchat_rag.storage.models import Document

logger = logging.getLogger(__name__)


class DocumentService:
    """Upload, list, inspect, delete and reprocess a user's documents.

    Every operation that takes a *document_id* verifies that it belongs
    to *owner_id* first.
    """

    def __init__(
        self,
        documents: DocumentRepository,
        files: LocalFileStore,
        worker: IngestionWorker,
        *,
        max_file_size: int = 10 * 1024 * 1024,
    ) -> None:
        self._documents = documents
        self._files = files
        self._worker = worker
        self.max_file_size = max_file_size

    def upload(
        self,
        owner_id: str,
        filename: str | None,
        mime_type: str | None,
        data: bytes,
    ) -> tuple[Document, Future[IngestionResult]]:
        """Store the bytes, create the document in ``PROCESSING`` and queue ingestion.

        Returns the new document and the future of its ingestion run.
        """
        if not filename or not filename.strip():
            raise ValidationError("No file uploaded")
        if not data:
            raise ValidationError("Uploaded file is empty")
        if len(data) > self.max_file_size:
            raise ValidationError(
                f"File exceeds the maximum size of {self.max_file_size} bytes"
            )

        storage_key = self._files.save(filename, data)
        document = self._documents.create(
            owner_id=owner_id,
            filename=filename,
            storage_key=storage_key,
            mime_type=mime_type or "",
            size_bytes=len(data),
        )
        future = self._worker.submit(document.id)
        logger.info("Document upload accepted: %s (%s)", document.id, filename)
        return document, future

    def list_documents(self, owner_id: str) -> list[tuple[Document, int]]:
        return self._documents.list_with_chunk_counts(owner_id)

    def get_document(self, owner_id: str, document_id: str) -> tuple[Document, int]:
        document = self._documents.get_owned(document_id, owner_id)
        return document, self._documents.count_chunks(document_id)

    def delete_document(self, owner_id: str, document_id: str) -> None:
        self._documents.get_owned(document_id, owner_id)
        self._worker.delete(document_id)

    def reprocess_document(self, owner_id: str, document_id: str) -> Future[IngestionResult]:
        self._documents.get_owned(document_id, owner_id)
        return self._worker.submit_reprocess(document_id)
