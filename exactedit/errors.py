"""Failures raised by the exact editor.

Every error aborts the whole call: no edit of the batch is applied.
"""

from __future__ import annotations


class ExactEditError(ValueError):
    """Base class for edits that cannot be applied byte-for-byte."""

    def __init__(self, message: str, page_number: int | None = None) -> None:
        super().__init__(message)
        self.page_number = page_number

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidDocument(ExactEditError):
    """The input bytes are not a readable PDF."""


class PageNotFound(ExactEditError):
    """An edit names a page outside the document."""


class UnsupportedStreamStructure(ExactEditError):
    """Page /Contents is neither a stream nor an array of streams."""


class FontEncodingUnavailable(ExactEditError):
    """The targeted run's font has no usable encoding."""


class RunNotFound(ExactEditError):
    """No text run matches the edit's original text."""


class FidelityError(ExactEditError):
    """The replacement would change the layout of the run."""


class GlyphCountMismatch(FidelityError):
    """The replacement encodes to a different number of codes."""


class ByteLengthMismatch(FidelityError):
    """The replacement encodes to a different number of bytes."""


class UnencodableCharacter(ExactEditError):
    """The replacement contains a character the font cannot show."""
