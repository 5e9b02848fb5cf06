"""Locate the text run an edit refers to."""

from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import dataclass

from . import config
from .errors import FontEncodingUnavailable, RunNotFound
from .extractor import TextRun
from .models import ExactTextEdit

_ZERO_WIDTH_RE = re.compile("[\u200b-\u200d\ufeff]")
_WHITESPACE_RE = re.compile(r"\s+")
_LIGATURE_RE = re.compile("[\ufb00-\ufb06]")


@dataclass(frozen=True)
class RunMatch:
    index: int
    run: TextRun
    score: float = 0.0


def normalize_for_match(text: str) -> str:
    """Fold the differences between extracted text and the font's own mapping."""
    if not text:
        return ""
    normalized = text.replace("\xa0", " ").replace("\xad", "")
    normalized = _ZERO_WIDTH_RE.sub("", normalized)
    normalized = _WHITESPACE_RE.sub(" ", normalized).strip()
    normalized = unicodedata.normalize("NFKC", normalized)
    return _LIGATURE_RE.sub(lambda m: config.LIGATURES.get(m.group(0), m.group(0)), normalized)


def strip_spaces(text: str) -> str:
    return _WHITESPACE_RE.sub("", text)


def is_text_match(run_text: str, edit_text: str) -> bool:
    """Exact, normalized, or normalized-without-whitespace equality."""
    if run_text == edit_text:
        return True
    edit_norm = normalize_for_match(edit_text)
    run_norm = normalize_for_match(run_text)
    if edit_norm and run_norm == edit_norm:
        return True
    edit_tight = strip_spaces(edit_norm)
    return bool(edit_tight) and strip_spaces(run_norm) == edit_tight


def edit_position(edit: ExactTextEdit) -> tuple[float, float] | None:
    if edit.transform is not None and len(edit.transform) >= 6:
        return edit.transform[4], edit.transform[5]
    if edit.x is not None and edit.y is not None:
        return edit.x, edit.y
    return None


def _score(index: int, run: TextRun, edit: ExactTextEdit, position: tuple[float, float] | None) -> float:
    score = abs(index - edit.source_index) * config.INDEX_DISTANCE_WEIGHT
    if position is not None and run.position is not None:
        score += math.hypot(run.position[0] - position[0], run.position[1] - position[1])
    if run.text != edit.original_text:
        score += config.NORMALIZATION_PENALTY
    return score


def find_matching_run(runs: list[TextRun], edit: ExactTextEdit, used: set[int]) -> RunMatch:
    """Return the unused editable run the edit targets and mark it used.

    ``edit.source_index`` is trusted only when the run there carries the
    edit's original text; otherwise every unused editable run with matching
    text competes on index distance, position distance and exactness.
    """
    index = edit.source_index
    direct = runs[index] if 0 <= index < len(runs) else None

    if direct is not None and index not in used and direct.editable:
        if is_text_match(direct.text, edit.original_text):
            used.add(index)
            return RunMatch(index, direct)

    position = edit_position(edit)
    candidates = [
        RunMatch(i, run, _score(i, run, edit, position))
        for i, run in enumerate(runs)
        if i not in used and run.editable and is_text_match(run.text, edit.original_text)
    ]
    if candidates:
        best = min(candidates, key=lambda c: (c.score, c.index))
        used.add(best.index)
        return best

    if direct is not None and index not in used and not direct.editable:
        font = direct.encoding.label if direct.encoding is not None else "without a selected font"
        raise FontEncodingUnavailable(
            f"Text run {index} uses font {font}, which cannot be re-encoded exactly"
        )
    raise RunNotFound(
        f"Could not locate the text {edit.original_text!r} (item {index}) in the page content stream"
    )
