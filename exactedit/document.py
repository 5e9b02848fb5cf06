"""Upload validation and opening PDFs from memory."""

from __future__ import annotations

import pymupdf

from .config import MAX_UPLOAD_SIZE
from .errors import InvalidDocument


def validate_upload(filename: str | None, content: bytes) -> None:
    """Reject uploads that are not a non-empty PDF within the size limit."""
    if not filename or not filename.lower().endswith(".pdf"):
        raise ValueError("Only PDF files are accepted")
    if len(content) == 0:
        raise ValueError("Empty file")
    if len(content) > MAX_UPLOAD_SIZE:
        raise ValueError(f"File too large (max {MAX_UPLOAD_SIZE // 1024 // 1024} MB)")


def open_pdf(content: bytes) -> pymupdf.Document:
    """Open PDF bytes, raising ``InvalidDocument`` for unreadable input."""
    try:
        doc = pymupdf.open(stream=content, filetype="pdf")
    except RuntimeError as exc:  # FileDataError, EmptyFileError
        raise InvalidDocument(f"Invalid PDF: {exc}") from exc
    if doc.needs_pass:
        doc.close()
        raise InvalidDocument("Encrypted PDFs cannot be edited in place")
    return doc
