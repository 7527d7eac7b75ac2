"""Format-specific text extraction.

One extractor per supported format, chosen from the MIME type first and
the filename extension second. Anything unrecognised, and any parser
error, surfaces as :class:`~docchat_rag.errors.ExtractionError` so the
ingestion pipeline records it on the document.
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import PurePath

from docchat_rag.errors import ExtractionError

logger = logging.getLogger(__name__)

Extractor = Callable[[bytes], str]

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

TEXT_EXTENSIONS = frozenset({".txt", ".md", ".markdown", ".csv", ".json", ".log"})
TEXT_MIME_TYPES = frozenset({"application/json", "application/x-ndjson"})


# ── Extractors ────────────────────────────────────────────────────────


def extract_pdf(data: bytes) -> str:
    from pypdf import PdfReader

    reader = PdfReader(io.BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def extract_docx(data: bytes) -> str:
    """Paragraphs first, then every table as ``cell | cell`` rows."""
    from docx import Document as DocxDocument

    doc = DocxDocument(io.BytesIO(data))
    parts = [p.text.strip() for p in doc.paragraphs if p.text.strip()]

    for table in doc.tables:
        rows = []
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                rows.append(" | ".join(cells))
        if rows:
            parts.append("\n".join(rows))

    return "\n\n".join(parts)


def extract_xlsx(data: bytes) -> str:
    """Each sheet becomes a ``### Sheet: <name>`` header followed by CSV rows."""
    from openpyxl import load_workbook

    workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    sections: list[str] = []
    try:
        for sheet in workbook.worksheets:
            buffer = io.StringIO()
            writer = csv.writer(buffer, lineterminator="\n")
            for row in sheet.iter_rows(values_only=True):
                if row is None or all(value is None for value in row):
                    continue
                writer.writerow(["" if value is None else value for value in row])
            sections.append(f"### Sheet: {sheet.title}\n{buffer.getvalue().rstrip()}")
    finally:
        workbook.close()
    return "\n\n".join(sections).strip()


def extract_plain_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ExtractionError(f"File is not valid UTF-8 text: {exc.reason}") from exc


# ── Registry ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExtractorEntry:
    kind: str
    mime_types: frozenset[str]
    extensions: frozenset[str]
    extractor: Extractor
    mime_prefix: str | None = None

    def matches_mime(self, mime_type: str) -> bool:
        if mime_type in self.mime_types:
            return True
        return bool(self.mime_prefix and mime_type.startswith(self.mime_prefix))


class ExtractorRegistry:
    """Selects and runs the extractor for an uploaded file."""

    def __init__(self, entries: list[ExtractorEntry] | None = None) -> None:
        self._entries: list[ExtractorEntry] = list(entries) if entries is not None else default_entries()

    def register(self, entry: ExtractorEntry) -> None:
        self._entries.insert(0, entry)

    def select(self, mime_type: str | None, filename: str | None) -> ExtractorEntry:
        mime = (mime_type or "").split(";")[0].strip().lower()
        suffix = PurePath(filename or "").suffix.lower()

        for entry in self._entries:
            if mime and entry.matches_mime(mime):
                return entry
        for entry in self._entries:
            if suffix and suffix in entry.extensions:
                return entry
        raise ExtractionError(
            f"Unsupported file type: mime={mime or 'unknown'!r}, filename={filename!r}"
        )

    def extract(self, data: bytes, mime_type: str | None, filename: str | None) -> str:
        entry = self.select(mime_type, filename)
        try:
            text = entry.extractor(data)
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(f"Failed to parse {entry.kind.upper()} file: {exc}") from exc

        logger.info("Extracted %d characters from %s (%s)", len(text), filename, entry.kind)
        return text


def default_entries() -> list[ExtractorEntry]:
    return [
        ExtractorEntry("pdf", frozenset({PDF_MIME}), frozenset({".pdf"}), extract_pdf),
        ExtractorEntry("docx", frozenset({DOCX_MIME}), frozenset({".docx"}), extract_docx),
        ExtractorEntry("xlsx", frozenset({XLSX_MIME}), frozenset({".xlsx"}), extract_xlsx),
        ExtractorEntry(
            "text",
            TEXT_MIME_TYPES,
            TEXT_EXTENSIONS,
            extract_plain_text,
            mime_prefix="text/",
        ),
    ]
