"""Replay text operators of a content stream into positioned text runs.

The replay is a fold: each operator maps an immutable ``TextState`` to the
next one, so the positional bookkeeping can be tested without any fonts.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from .fonts import FontEncoding
from .tokenizer import (
    ARRAY,
    HEX,
    NAME,
    NUMBER,
    OPERATOR,
    STRING,
    StringOperand,
    Token,
    array_strings,
    string_operand,
    tokenize,
)

Matrix = tuple[float, float, float, float, float, float]

IDENTITY: Matrix = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)

TEXT_SHOWING_OPERATORS = ("Tj", "TJ", "'", '"')


@dataclass(frozen=True)
class TextState:
    font: str | None = None
    leading: float = 0.0
    text_matrix: Matrix = IDENTITY
    line_matrix: Matrix = IDENTITY
    saved: tuple[tuple[str | None, float], ...] = ()


@dataclass(frozen=True)
class TextRun:
    """One shown string, i.e. a single ``Tj`` operand or ``TJ`` element."""

    text: str
    stream_index: int
    literal_start: int
    literal_end: int
    literal_form: str
    editable: bool
    original_bytes: bytes
    code_count: int
    encoding: FontEncoding | None
    position: tuple[float, float] | None


def translate(matrix: Matrix, tx: float, ty: float) -> Matrix:
    a, b, c, d, e, f = matrix
    return (a, b, c, d, a * tx + c * ty + e, b * tx + d * ty + f)


def _numbers(tokens: list[Token], index: int, count: int) -> list[float] | None:
    """The *count* numeric operands right before the operator at *index*."""
    if index < count:
        return None
    operands = tokens[index - count : index]
    if any(t.kind != NUMBER for t in operands):
        return None
    return [float(t.value) for t in operands]


def _next_line(state: TextState, tx: float, ty: float) -> TextState:
    line = translate(state.line_matrix, tx, ty)
    return replace(state, line_matrix=line, text_matrix=line)


def advance(state: TextState, tokens: list[Token], index: int) -> TextState:
    """Apply the operator at ``tokens[index]`` to the text state."""
    op = tokens[index].value

    if op == "BT":
        return replace(state, text_matrix=IDENTITY, line_matrix=IDENTITY)
    if op == "q":
        return replace(state, saved=state.saved + ((state.font, state.leading),))
    if op == "Q":
        if not state.saved:
            return state
        font, leading = state.saved[-1]
        return replace(state, font=font, leading=leading, saved=state.saved[:-1])
    if op == "Tf":
        if index >= 2 and tokens[index - 2].kind == NAME and tokens[index - 1].kind == NUMBER:
            return replace(state, font=tokens[index - 2].value[1:])
        return state
    if op == "Tm":
        values = _numbers(tokens, index, 6)
        if values is None:
            return state
        matrix = tuple(values)
        return replace(state, text_matrix=matrix, line_matrix=matrix)
    if op == "Td":
        values = _numbers(tokens, index, 2)
        return state if values is None else _next_line(state, *values)
    if op == "TD":
        values = _numbers(tokens, index, 2)
        if values is None:
            return state
        return _next_line(replace(state, leading=-values[1]), *values)
    if op == "TL":
        values = _numbers(tokens, index, 1)
        return state if values is None else replace(state, leading=values[0])
    if op in ("T*", "'", '"'):
        return _next_line(state, 0.0, -state.leading)
    return state


def _make_run(
    operand: StringOperand,
    stream_index: int,
    encoding: FontEncoding | None,
    position: tuple[float, float],
) -> TextRun:
    decoded = encoding.decode(operand.data) if encoding is not None else None
    if decoded is None:
        text, code_count, editable = "", len(operand.data), False
    else:
        (text, code_count), editable = decoded, encoding.editable
    return TextRun(
        text=text,
        stream_index=stream_index,
        literal_start=operand.literal_start,
        literal_end=operand.literal_end,
        literal_form=operand.form,
        editable=editable,
        original_bytes=operand.data,
        code_count=code_count,
        encoding=encoding,
        position=position,
    )


def _shown_strings(tokens: list[Token], index: int) -> list[StringOperand]:
    operand = tokens[index - 1] if index > 0 else None
    if operand is None:
        return []
    if tokens[index].value == "TJ":
        return array_strings(operand) if operand.kind == ARRAY else []
    if operand.kind in (STRING, HEX):
        return [string_operand(operand)]
    return []


def extract_runs(
    raw: bytes,
    stream_index: int,
    encodings: dict[str, FontEncoding],
    state: TextState | None = None,
) -> tuple[list[TextRun], TextState]:
    """Extract text runs of one decoded content stream in operator order.

    *state* carries the text state over from the previous stream of the
    same page; the final state is returned for the next one.
    """
    state = state or TextState()
    tokens = tokenize(raw)
    runs: list[TextRun] = []

    for i, token in enumerate(tokens):
        if token.kind != OPERATOR:
            continue
        state = advance(state, tokens, i)
        if token.value not in TEXT_SHOWING_OPERATORS:
            continue
        encoding = encodings.get(state.font) if state.font else None
        position = (state.text_matrix[4], state.text_matrix[5])
        for operand in _shown_strings(tokens, i):
            runs.append(_make_run(operand, stream_index, encoding, position))

    return runs, state
