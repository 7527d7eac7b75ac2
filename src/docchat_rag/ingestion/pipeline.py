"""Document ingestion pipeline.

Turns one stored upload into searchable chunks::

    extract text ─► chunk ─► embed (parallel) ─► chunk rows ─► vectors

and drives the document's status from ``PROCESSING`` to ``PROCESSED`` or
``FAILED``.  Every failure inside the steps is caught once, the partial
chunk rows and vectors are discarded, and the error text is stored on
the document.  A call to :meth:`IngestionPipeline.start` therefore never
leaves the document in ``PROCESSING``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from docchat_rag.errors import NotFoundError, ProcessingFailure
from docchat_rag.ingestion.chunker import chunk_text, validate_chunking
from docchat_rag.ingestion.extractors import ExtractorRegistry
from docchat_rag.ingestion.status import DocumentStatus
from docchat_rag.providers.base import EmbeddingProvider
from docchat_rag.retrieval.base import VectorStoreBase
from docchat_rag.retrieval.models import (
    ChunkMetadata,
    ChunkPayload,
    MetadataFilter,
    VectorPoint,
)
from docchat_rag.storage.base import DocumentRepository, NewChunk
from docchat_rag.storage.files import LocalFileStore
from docchat_rag.storage.models import Document, new_id

logger = logging.getLogger(__name__)

NO_CONTENT_MESSAGE = "Document did not produce any content for embeddings"


def vector_id_for(document_id: str, chunk_index: int) -> str:
    return f"{document_id}-chunk-{chunk_index}"


def document_filter(document_id: str) -> list[MetadataFilter]:
    return [MetadataFilter.equals("document_id", document_id)]


@dataclass(frozen=True)
class IngestionResult:
    document_id: str
    status: DocumentStatus
    chunk_count: int = 0
    error: str | None = None


class IngestionPipeline:
    """Parse → chunk → embed → persist for one document at a time.

    Parameters
    ----------
    documents:
        Repository owning Document / DocumentChunk rows.
    vector_store:
        Backend receiving one vector per chunk.
    embedder:
        Provider used for the chunk embeddings.
    files:
        Store holding the uploaded bytes.
    chunk_size / chunk_overlap:
        Chunker bounds; validated here so a bad configuration fails at
        start-up rather than on the first upload.
    extractors:
        Format registry; defaults to PDF, DOCX, XLSX and plain text.
    """

    def __init__(
        self,
        documents: DocumentRepository,
        vector_store: VectorStoreBase,
        embedder: EmbeddingProvider,
        files: LocalFileStore,
        *,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        extractors: ExtractorRegistry | None = None,
    ) -> None:
        validate_chunking(chunk_size, chunk_overlap)
        self._documents = documents
        self._vector_store = vector_store
        self._embedder = embedder
        self._files = files
        self._extractors = extractors or ExtractorRegistry()
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    # -- public API -----------------------------------------------------------

    def start(self, document_id: str) -> IngestionResult:
        """Ingest a freshly uploaded document (status ``PROCESSING``)."""
        return self._run(document_id, reset=False)

    def reprocess(self, document_id: str) -> IngestionResult:
        """Purge the document's vectors and chunk rows, then ingest again.

        A vector-store failure during the purge propagates and leaves the
        document untouched.
        """
        self._documents.get(document_id)
        self._vector_store.delete_by_filter(document_filter(document_id))
        removed = self._documents.delete_chunks(document_id)
        logger.info("Reprocessing document %s (purged %d chunks)", document_id, removed)
        return self._run(document_id, reset=True)

    def delete_document(self, document_id: str) -> None:
        """Remove vectors, chunk rows, the document row and the stored bytes, in that order."""
        document = self._documents.get(document_id)
        self._vector_store.delete_by_filter(document_filter(document_id))
        self._documents.delete_chunks(document_id)
        self._documents.delete(document_id)

        try:
            self._files.delete(document.storage_key)
        except Exception:
            logger.warning(
                "Could not delete stored file %s for document %s",
                document.storage_key,
                document_id,
                exc_info=True,
            )
        logger.info("Deleted document %s", document_id)

    # -- internals ------------------------------------------------------------

    def _run(self, document_id: str, *, reset: bool) -> IngestionResult:
        document = self._documents.set_status(document_id, DocumentStatus.PROCESSING, reset=reset)
        logger.info("Processing document %s (%s)", document_id, document.filename)

        try:
            chunks = self._extract_and_chunk(document)
            if not chunks:
                logger.warning("Document %s produced no chunks", document_id)
                self._documents.set_status(
                    document_id, DocumentStatus.FAILED, error=NO_CONTENT_MESSAGE
                )
                return IngestionResult(document_id, DocumentStatus.FAILED, 0, NO_CONTENT_MESSAGE)

            vectors = self._embedder.embed_batch(chunks)
            if len(vectors) != len(chunks):
                raise ProcessingFailure(
                    f"Embedding count mismatch: {len(vectors)} vectors for {len(chunks)} chunks"
                )
            self._persist(document, chunks, vectors)
            # Fails with NotFoundError when the document was deleted meanwhile.
            self._documents.set_status(document_id, DocumentStatus.PROCESSED)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            logger.exception("Error processing document %s", document_id)
            self._discard_partial(document_id)
            self._record_failure(document_id, error)
            return IngestionResult(document_id, DocumentStatus.FAILED, 0, error)

        logger.info("Document %s processed successfully with %d chunks", document_id, len(chunks))
        return IngestionResult(document_id, DocumentStatus.PROCESSED, len(chunks))

    def _record_failure(self, document_id: str, error: str) -> None:
        try:
            self._documents.set_status(document_id, DocumentStatus.FAILED, error=error)
        except NotFoundError:
            logger.warning("Document %s was deleted during processing", document_id)

    def _extract_and_chunk(self, document: Document) -> list[str]:
        data = self._files.read(document.storage_key)
        text = self._extractors.extract(data, document.mime_type, document.filename)
        chunks = chunk_text(text, self.chunk_size, self.chunk_overlap)
        logger.info("Created %d chunks for document %s", len(chunks), document.id)
        return chunks

    def _persist(self, document: Document, chunks: list[str], vectors: list[list[float]]) -> None:
        rows = [
            NewChunk(
                id=new_id(),
                chunk_index=index,
                content=content,
                vector_id=vector_id_for(document.id, index),
            )
            for index, content in enumerate(chunks)
        ]
        self._documents.add_chunks(document.id, rows)

        points = [
            VectorPoint(
                id=row.vector_id,
                vector=vector,
                payload=ChunkPayload(
                    chunk_id=row.id,
                    document_id=document.id,
                    owner_id=document.owner_id,
                    content=row.content,
                    metadata=ChunkMetadata(filename=document.filename, chunk_index=row.chunk_index),
                ),
            )
            for row, vector in zip(rows, vectors)
        ]
        self._vector_store.upsert(points)

    def _discard_partial(self, document_id: str) -> None:
        """Best-effort removal of whatever the failed run already wrote."""
        try:
            self._vector_store.delete_by_filter(document_filter(document_id))
        except Exception:
            logger.warning("Could not discard vectors of document %s", document_id, exc_info=True)
        try:
            self._documents.delete_chunks(document_id)
        except Exception:
            logger.warning("Could not discard chunks of document %s", document_id, exc_info=True)
