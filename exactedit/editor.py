"""Exact, in-place text replacement in PDF content streams.

An edit is applied only if the replacement encodes, in the run's own font,
to exactly as many codes and bytes as the original string. The new bytes are
swapped inside the string delimiters, so font, kerning and the position of
every other glyph stay untouched. Any edit that cannot be applied this way
aborts the whole call.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import pymupdf

from .document import open_pdf
from .errors import (
    ByteLengthMismatch,
    ExactEditError,
    FontEncodingUnavailable,
    GlyphCountMismatch,
    PageNotFound,
)
from .extractor import TextRun, TextState, extract_runs
from .fonts import FontEncoding, resolve_page_encodings
from .matcher import find_matching_run
from .models import ExactTextEdit
from .streams import StreamEntry, load_page_streams, read_stream, register_stream, repoint_contents
from .tokenizer import HEX_FORM, bytes_to_hex, bytes_to_literal

logger = logging.getLogger(__name__)


class PageStage(Enum):
    IDLE = "idle"
    ENCODINGS_RESOLVED = "encodings_resolved"
    RUNS_EXTRACTED = "runs_extracted"
    EDITS_MATCHED = "edits_matched"
    REPLACEMENTS_APPLIED = "replacements_applied"
    STREAMS_PATCHED = "streams_patched"
    ABORTED = "aborted"


@dataclass(frozen=True)
class Replacement:
    """New string body for ``buffer[start:end]`` of one content stream."""

    stream_index: int
    start: int
    end: int
    data: bytes


def apply_replacements(buffer: bytes, replacements: Iterable[Replacement]) -> bytes:
    """Splice replacements into *buffer*, highest offset first.

    Working back to front keeps the offsets of the remaining, lower
    replacements valid.
    """
    updated = buffer
    for rep in sorted(replacements, key=lambda r: r.start, reverse=True):
        updated = updated[: rep.start] + rep.data + updated[rep.end :]
    return updated


def encode_replacement(run: TextRun, text: str) -> Replacement:
    """Encode *text* in the run's font, enforcing identical code and byte counts."""
    if not run.editable or run.encoding is None:
        raise FontEncodingUnavailable(f"The text {run.text!r} uses a font that cannot be re-encoded")
    data, code_count = run.encoding.encode(text)
    if len(data) != len(run.original_bytes):
        raise ByteLengthMismatch(
            f"Replacement {text!r} encodes to {len(data)} bytes in font "
            f"{run.encoding.label}; the original uses {len(run.original_bytes)}"
        )
    if code_count != run.code_count:
        raise GlyphCountMismatch(
            f"Replacement {text!r} has {code_count} glyphs; the original "
            f"{run.text!r} has {run.code_count}"
        )
    body = bytes_to_hex(data) if run.literal_form == HEX_FORM else bytes_to_literal(data)
    return Replacement(run.stream_index, run.literal_start, run.literal_end, body)


class PageEditSession:
    """Match, encode and patch all edits of one page.

    Stages advance IDLE → ENCODINGS_RESOLVED → RUNS_EXTRACTED → EDITS_MATCHED
    → REPLACEMENTS_APPLIED → STREAMS_PATCHED; any failure moves to ABORTED
    and is re-raised, leaving the document unmodified.
    """

    def __init__(self, doc: pymupdf.Document, page_number: int) -> None:
        if not 1 <= page_number <= len(doc):
            raise PageNotFound(f"Page {page_number} not found in PDF", page_number)
        self.doc = doc
        self.page_number = page_number
        self.page = doc[page_number - 1]
        self.stage = PageStage.IDLE
        self.encodings: dict[str, FontEncoding] = {}
        self.streams: list[StreamEntry] = []
        self.buffers: list[bytes] = []
        self.runs: list[TextRun] = []
        self.replacements: list[Replacement] = []

    def _enter(self, stage: PageStage) -> None:
        logger.debug("Page %d: %s -> %s", self.page_number, self.stage.value, stage.value)
        self.stage = stage

    def resolve_encodings(self) -> None:
        self.encodings = resolve_page_encodings(self.doc, self.page)
        self._enter(PageStage.ENCODINGS_RESOLVED)

    def extract_runs(self) -> None:
        self.streams = load_page_streams(self.doc, self.page)
        state: TextState | None = None
        for entry in self.streams:
            raw = read_stream(self.doc, entry)
            self.buffers.append(raw)
            runs, state = extract_runs(raw, entry.index, self.encodings, state)
            self.runs.extend(runs)
        self._enter(PageStage.RUNS_EXTRACTED)

    def match_edits(self, edits: list[ExactTextEdit]) -> None:
        used: set[int] = set()
        for edit in edits:
            match = find_matching_run(self.runs, edit, used)
            self.replacements.append(encode_replacement(match.run, edit.text))
            logger.debug(
                "Page %d: edit of item %d matched run %d", self.page_number, edit.source_index, match.index
            )
        self._enter(PageStage.EDITS_MATCHED)

    def apply_replacements(self) -> dict[int, bytes]:
        by_stream: dict[int, list[Replacement]] = {}
        for rep in self.replacements:
            by_stream.setdefault(rep.stream_index, []).append(rep)
        patched = {
            index: apply_replacements(self.buffers[index], reps) for index, reps in by_stream.items()
        }
        self._enter(PageStage.REPLACEMENTS_APPLIED)
        return patched

    def patch_streams(self, patched: Mapping[int, bytes]) -> None:
        new_xrefs = {index: register_stream(self.doc, data) for index, data in patched.items()}
        repoint_contents(self.doc, self.page, self.streams, new_xrefs)
        self._enter(PageStage.STREAMS_PATCHED)

    def run(self, edits: list[ExactTextEdit]) -> None:
        try:
            self.resolve_encodings()
            self.extract_runs()
            self.match_edits(edits)
            patched = self.apply_replacements()
        except ExactEditError as exc:
            self._enter(PageStage.ABORTED)
            if exc.page_number is None:
                exc.page_number = self.page_number
            logger.warning("Exact edit aborted on page %d: %s", self.page_number, exc)
            raise
        self.patch_streams(patched)


def _coerce_edit(edit: ExactTextEdit | Mapping[str, Any]) -> ExactTextEdit:
    if isinstance(edit, ExactTextEdit):
        return edit
    return ExactTextEdit.model_validate(edit)


def group_edits_by_page(edits: Iterable[ExactTextEdit]) -> dict[int, list[ExactTextEdit]]:
    """Group edits by 1-based page number, pages ascending, edit order kept."""
    grouped: dict[int, list[ExactTextEdit]] = {}
    for edit in edits:
        grouped.setdefault(edit.page_number, []).append(edit)
    return dict(sorted(grouped.items()))


def apply_exact_edits(
    pdf_bytes: bytes, edits: Iterable[ExactTextEdit | Mapping[str, Any]]
) -> bytes:
    """Apply exact text edits to a PDF and return the new PDF bytes.

    Raises an ``ExactEditError`` subclass if any edit cannot be matched or
    encoded at identical length; nothing is applied in that case.
    """
    edits = [_coerce_edit(e) for e in edits]
    if not edits:
        return pdf_bytes

    doc = open_pdf(pdf_bytes)
    try:
        for page_number, page_edits in group_edits_by_page(edits).items():
            PageEditSession(doc, page_number).run(page_edits)
            logger.info("Applied %d exact edit(s) on page %d", len(page_edits), page_number)
        # No garbage collection, cleaning or object streams: untouched
        # objects are written back as they were.
        return doc.tobytes(garbage=0, clean=False, deflate=False)
    finally:
        doc.close()


def list_page_runs(pdf_bytes: bytes, page_number: int) -> list[TextRun]:
    """Text runs of a page in the order edits index them."""
    doc = open_pdf(pdf_bytes)
    try:
        session = PageEditSession(doc, page_number)
        session.resolve_encodings()
        session.extract_runs()
        return session.runs
    finally:
        doc.close()
