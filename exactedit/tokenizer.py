"""Content stream tokenizer that keeps byte offsets for in-place edits."""

from __future__ import annotations

import re
from dataclasses import dataclass

STRING = "string"
HEX = "hex"
ARRAY = "array"
NAME = "name"
NUMBER = "number"
OPERATOR = "operator"
OTHER = "other"

LITERAL_FORM = "literal"
HEX_FORM = "hex"

_WHITESPACE = (b" ", b"\t", b"\r", b"\n", b"\x00", b"\x0c")
_DELIMITERS = (b"(", b")", b"[", b"]", b"<", b">", b"{", b"}", b"/", b"%")

_NUMBER_RE = re.compile(rb"[+-]?(?:\d+\.?\d*|\.\d+)")
_OPERATOR_RE = re.compile(rb"[A-Za-z][A-Za-z0-9]*\*?")
_INLINE_IMAGE_END_RE = re.compile(rb"[ \t\r\n\x00\x0c]EI(?=[ \t\r\n\x00\x0c]|$)")
_NON_HEX_RE = re.compile(rb"[^0-9A-Fa-f]")

_ESCAPE_MAP = {
    ord("n"): ord("\n"),
    ord("r"): ord("\r"),
    ord("t"): ord("\t"),
    ord("b"): ord("\b"),
    ord("f"): ord("\f"),
    ord("\\"): ord("\\"),
    ord("("): ord("("),
    ord(")"): ord(")"),
}
_LITERAL_ESCAPES = {
    0x0A: b"\\n",
    0x0D: b"\\r",
    0x09: b"\\t",
    0x08: b"\\b",
    0x0C: b"\\f",
    0x28: b"\\(",
    0x29: b"\\)",
    0x5C: b"\\\\",
}


@dataclass(frozen=True)
class Token:
    """One lexical item of a content stream.

    ``start``/``end`` are offsets into the decoded stream buffer and
    ``raw == buffer[start:end]``.
    """

    kind: str
    raw: bytes
    start: int
    end: int

    @property
    def value(self) -> str:
        return self.raw.decode("latin-1")

    def is_operator(self, *names: str) -> bool:
        return self.kind == OPERATOR and self.value in names


@dataclass(frozen=True)
class StringOperand:
    """A text-showing string with the span *inside* its delimiters."""

    literal_start: int
    literal_end: int
    form: str
    data: bytes


def _scan_literal(raw: bytes, i: int) -> int:
    """Return the offset just past the literal string opening at *i*."""
    n = len(raw)
    i += 1
    depth = 1
    while i < n and depth > 0:
        c = raw[i : i + 1]
        if c == b"\\":
            i += 2  # skip escaped char
            continue
        if c == b"(":
            depth += 1
        elif c == b")":
            depth -= 1
        i += 1
    return min(i, n)


def _scan_hex(raw: bytes, i: int) -> int:
    """Return the offset just past the hex string opening at *i*."""
    end = raw.find(b">", i + 1)
    return len(raw) if end < 0 else end + 1


def _scan_array(raw: bytes, i: int) -> int:
    """Return the offset just past the array opening at *i*.

    Brackets inside nested literal or hex strings do not count.
    """
    n = len(raw)
    i += 1
    depth = 1
    while i < n and depth > 0:
        c = raw[i : i + 1]
        if c == b"\\":
            i += 2
            continue
        if c == b"(":
            i = _scan_literal(raw, i)
            continue
        if c == b"<" and raw[i + 1 : i + 2] != b"<":
            i = _scan_hex(raw, i)
            continue
        if c == b"[":
            depth += 1
        elif c == b"]":
            depth -= 1
        i += 1
    return min(i, n)


def classify(value: bytes) -> str:
    """Classify a bare (non-string, non-array) token."""
    if value in (b"'", b'"'):
        return OPERATOR
    if value.startswith(b"/"):
        return NAME
    if _NUMBER_RE.fullmatch(value):
        return NUMBER
    if _OPERATOR_RE.fullmatch(value):
        return OPERATOR
    return OTHER


def tokenize(raw: bytes) -> list[Token]:
    """Split a decoded content stream into tokens with byte offsets.

    ``(...)`` literals, ``<...>`` hex strings and ``[...]`` arrays are single
    tokens. ``<<``/``>>`` are dictionary delimiters, ``%`` comments are
    skipped, and inline image data between ``ID`` and ``EI`` is kept opaque.
    """
    tokens: list[Token] = []
    i = 0
    n = len(raw)

    while i < n:
        ch = raw[i : i + 1]

        if ch in _WHITESPACE:
            i += 1
            continue

        if ch == b"%":
            while i < n and raw[i : i + 1] not in (b"\r", b"\n"):
                i += 1
            continue

        start = i
        if ch == b"(":
            i = _scan_literal(raw, i)
            tokens.append(Token(STRING, raw[start:i], start, i))
            continue

        if ch == b"<" and raw[i + 1 : i + 2] == b"<":
            i += 2
            tokens.append(Token(OTHER, raw[start:i], start, i))
            continue

        if ch == b"<":
            i = _scan_hex(raw, i)
            tokens.append(Token(HEX, raw[start:i], start, i))
            continue

        if ch == b">" and raw[i + 1 : i + 2] == b">":
            i += 2
            tokens.append(Token(OTHER, raw[start:i], start, i))
            continue

        if ch == b"[":
            i = _scan_array(raw, i)
            tokens.append(Token(ARRAY, raw[start:i], start, i))
            continue

        if ch in (b")", b"]", b">", b"{", b"}"):
            i += 1
            tokens.append(Token(OTHER, ch, start, i))
            continue

        # Regular token (name, number, operator); names keep their leading /
        i += 1
        while i < n and raw[i : i + 1] not in _WHITESPACE and raw[i : i + 1] not in _DELIMITERS:
            i += 1
        value = raw[start:i]
        token = Token(classify(value), value, start, i)
        tokens.append(token)

        if token.is_operator("ID"):
            i = _skip_inline_image(raw, i, tokens)

    return tokens


def _skip_inline_image(raw: bytes, i: int, tokens: list[Token]) -> int:
    """Record the binary payload after ``ID`` as one opaque token."""
    data_start = min(i + 1, len(raw))  # single whitespace byte after ID
    m = _INLINE_IMAGE_END_RE.search(raw, data_start)
    data_end = m.start() if m else len(raw)
    if data_end > data_start:
        tokens.append(Token(OTHER, raw[data_start:data_end], data_start, data_end))
    return data_end


def literal_to_bytes(body: bytes) -> bytes:
    """Unescape the body of a ``(...)`` literal (delimiters excluded)."""
    result = bytearray()
    i = 0
    n = len(body)
    while i < n:
        b = body[i]
        if b != 0x5C:  # backslash
            result.append(b)
            i += 1
            continue
        i += 1
        if i >= n:
            break
        nxt = body[i]
        if nxt in _ESCAPE_MAP:
            result.append(_ESCAPE_MAP[nxt])
            i += 1
        elif 0x30 <= nxt <= 0x37:  # octal
            octal = chr(nxt)
            for _ in range(2):
                if i + 1 < n and 0x30 <= body[i + 1] <= 0x37:
                    i += 1
                    octal += chr(body[i])
                else:
                    break
            result.append(int(octal, 8) & 0xFF)
            i += 1
        elif nxt in (0x0D, 0x0A):  # line continuation
            i += 1
            if nxt == 0x0D and i < n and body[i] == 0x0A:
                i += 1
        else:
            result.append(nxt)
            i += 1
    return bytes(result)


def hex_to_bytes(body: bytes) -> bytes:
    """Decode the body of a ``<...>`` string; an odd final digit is padded."""
    digits = _NON_HEX_RE.sub(b"", body)
    if len(digits) % 2:
        digits += b"0"
    return bytes.fromhex(digits.decode("ascii"))


def bytes_to_literal(data: bytes) -> bytes:
    """Escape raw bytes as the body of a ``(...)`` literal."""
    out = bytearray()
    for b in data:
        if b in _LITERAL_ESCAPES:
            out.extend(_LITERAL_ESCAPES[b])
        elif 0x20 <= b <= 0x7E:
            out.append(b)
        else:
            out.extend(b"\\%03o" % b)
    return bytes(out)


def bytes_to_hex(data: bytes) -> bytes:
    return data.hex().upper().encode("ascii")


def string_operand(token: Token) -> StringOperand:
    """Describe a string or hex token as an editable operand."""
    if token.kind == HEX:
        body_end = token.end - 1 if token.raw.endswith(b">") and len(token.raw) > 1 else token.end
        body = token.raw[1 : body_end - token.start]
        return StringOperand(token.start + 1, body_end, HEX_FORM, hex_to_bytes(body))
    body_end = token.end - 1 if token.raw.endswith(b")") and len(token.raw) > 1 else token.end
    body = token.raw[1 : body_end - token.start]
    return StringOperand(token.start + 1, body_end, LITERAL_FORM, literal_to_bytes(body))


def array_strings(token: Token) -> list[StringOperand]:
    """Extract the string elements of a ``TJ`` array with stream offsets.

    Numeric kerning adjustments are skipped.
    """
    raw = token.raw
    strings: list[StringOperand] = []
    i = 1
    limit = len(raw) - 1 if raw.endswith(b"]") else len(raw)
    while i < limit:
        ch = raw[i : i + 1]
        if ch == b"(":
            end = min(_scan_literal(raw, i), limit)
            sub = Token(STRING, raw[i:end], token.start + i, token.start + end)
            strings.append(string_operand(sub))
            i = end
        elif ch == b"<" and raw[i + 1 : i + 2] != b"<":
            end = min(_scan_hex(raw, i), limit)
            sub = Token(HEX, raw[i:end], token.start + i, token.start + end)
            strings.append(string_operand(sub))
            i = end
        else:
            i += 1
    return strings
