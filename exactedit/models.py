"""Pydantic request and response models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ExactTextEdit(BaseModel):
    """One in-place replacement, as sent by the browser-side text extraction.

    ``source_index`` is the item's index in that extraction for the page;
    ``x``/``y``/``transform`` are in unscaled PDF user space.
    """

    model_config = ConfigDict(populate_by_name=True)

    page_number: int = Field(alias="pageNumber", ge=1)
    source_index: int = Field(alias="sourceIndex")
    original_text: str = Field(default="", alias="originalText")
    text: str
    x: float | None = None
    y: float | None = None
    transform: list[float] | None = None


class TextRunInfo(BaseModel):
    index: int
    text: str
    stream_index: int
    editable: bool
    font: str | None
    literal_form: str  # "literal" | "hex"
    code_count: int
    x: float | None
    y: float | None


class PageRunsResponse(BaseModel):
    page_number: int
    runs: list[TextRunInfo]
