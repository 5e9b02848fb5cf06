"""Read and replace the content streams of a page's /Contents entry."""

from __future__ import annotations

import re
from dataclasses import dataclass

import pymupdf

from .errors import UnsupportedStreamStructure

_REF_RE = re.compile(r"(\d+)\s+\d+\s+R")


@dataclass(frozen=True)
class StreamEntry:
    """One content stream of a page, in /Contents order.

    ``array_xref`` is set when /Contents points at an indirect array object.
    """

    index: int
    xref: int
    in_array: bool = False
    array_xref: int | None = None


def _array_entries(doc: pymupdf.Document, array: str, array_xref: int | None) -> list[StreamEntry]:
    entries = []
    for index, m in enumerate(_REF_RE.finditer(array)):
        xref = int(m.group(1))
        if not doc.xref_is_stream(xref):
            raise UnsupportedStreamStructure(f"/Contents element {index} ({xref} 0 R) is not a stream")
        entries.append(StreamEntry(index, xref, in_array=True, array_xref=array_xref))
    return entries


def load_page_streams(doc: pymupdf.Document, page: pymupdf.Page) -> list[StreamEntry]:
    """Normalise /Contents (a stream or an array of streams) into a list."""
    kind, value = doc.xref_get_key(page.xref, "Contents")
    if kind == "null":
        return []
    if kind == "array":
        return _array_entries(doc, value, None)
    if kind == "xref":
        m = _REF_RE.match(value)
        xref = int(m.group(1)) if m else 0
        if xref and doc.xref_is_stream(xref):
            return [StreamEntry(0, xref)]
        if xref and doc.xref_object(xref, compressed=True).lstrip().startswith("["):
            return _array_entries(doc, doc.xref_object(xref, compressed=True), xref)
    raise UnsupportedStreamStructure(
        f"Page /Contents must be a stream or an array of streams, got {kind}: {value}"
    )


def read_stream(doc: pymupdf.Document, entry: StreamEntry) -> bytes:
    """Decoded (unfiltered) bytes of a content stream."""
    return doc.xref_stream(entry.xref) or b""


def register_stream(doc: pymupdf.Document, data: bytes) -> int:
    """Store *data* as a new compressed stream object and return its xref."""
    xref = doc.get_new_xref()
    # get_new_xref only allocates the number; the object must exist first
    doc.update_object(xref, "<<>>")
    doc.update_stream(xref, data, compress=True)
    return xref


def repoint_contents(
    doc: pymupdf.Document,
    page: pymupdf.Page,
    entries: list[StreamEntry],
    new_xrefs: dict[int, int],
) -> None:
    """Point /Contents at the new stream objects, keyed by stream index."""
    if not new_xrefs:
        return
    if not entries[0].in_array:
        doc.xref_set_key(page.xref, "Contents", f"{new_xrefs[0]} 0 R")
        return
    refs = " ".join(f"{new_xrefs.get(e.index, e.xref)} 0 R" for e in entries)
    array_xref = entries[0].array_xref
    if array_xref is not None:
        doc.update_object(array_xref, f"[{refs}]")
    else:
        doc.xref_set_key(page.xref, "Contents", f"[{refs}]")
