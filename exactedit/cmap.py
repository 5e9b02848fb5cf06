"""ToUnicode CMap parsing into forward and reverse code maps."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_BFCHAR_RE = re.compile(rb"beginbfchar(.*?)endbfchar", re.DOTALL)
_BFRANGE_RE = re.compile(rb"beginbfrange(.*?)endbfrange", re.DOTALL)
_HEX_RE = re.compile(rb"<([0-9A-Fa-f\s]*)>")
_RANGE_TOKEN_RE = re.compile(rb"<[^>]*>|\[[^\]]*\]")


@dataclass
class ToUnicodeCMap:
    """Parsed ToUnicode tables.

    ``forward`` maps a source code (as bytes, so mixed code lengths coexist)
    to its Unicode text. ``reverse`` maps text back to the first code seen
    for it.
    """

    forward: dict[bytes, str] = field(default_factory=dict)
    reverse: dict[str, bytes] = field(default_factory=dict)
    code_lengths: set[int] = field(default_factory=set)
    max_unicode_len: int = 1

    def add(self, code: bytes, text: str) -> None:
        self.forward[code] = text
        self.code_lengths.add(len(code))
        if text and text not in self.reverse:
            self.reverse[text] = code
            self.max_unicode_len = max(self.max_unicode_len, len(text))


def _hex_digits(token: bytes) -> str:
    return re.sub(r"\s+", "", token.decode("ascii"))


def _code_units(hex_str: str) -> list[int]:
    data = bytes.fromhex(hex_str)
    return [int.from_bytes(data[i : i + 2], "big") for i in range(0, len(data) - 1, 2)]


def _units_to_text(units: list[int]) -> str:
    data = b"".join((u & 0xFFFF).to_bytes(2, "big") for u in units)
    return data.decode("utf-16-be", errors="surrogatepass")


def _odd_bytes(hex_str: str) -> bytearray:
    if len(hex_str) % 2:
        hex_str += "0"
    return bytearray.fromhex(hex_str)


def decode_unicode_hex(hex_str: str) -> str:
    """Decode a CMap destination: UTF-16BE, or one char per byte if odd-sized."""
    if not hex_str:
        return ""
    if len(hex_str) % 4:
        return "".join(chr(b) for b in _odd_bytes(hex_str))
    return _units_to_text(_code_units(hex_str))


def increment_unicode_hex(hex_str: str, offset: int) -> str:
    """Destination of the *offset*-th code of a ``bfrange`` (last unit bumped)."""
    if not hex_str:
        return ""
    if len(hex_str) % 4:
        chars = [chr(b) for b in _odd_bytes(hex_str)]
        chars[-1] = chr(ord(chars[-1]) + offset)
        return "".join(chars)
    units = _code_units(hex_str)
    units[-1] += offset
    return _units_to_text(units)


def _code_width(hex_len: int) -> int:
    return max(1, (hex_len + 1) // 2)


def _code_bytes(value: int, hex_len: int) -> bytes:
    return value.to_bytes(_code_width(hex_len), "big")


def parse_tounicode_cmap(data: bytes) -> ToUnicodeCMap:
    """Parse ``bfchar`` and ``bfrange`` sections of a ToUnicode CMap stream."""
    cmap = ToUnicodeCMap()

    for section in _BFCHAR_RE.findall(data):
        hex_tokens = [_hex_digits(m) for m in _HEX_RE.findall(section)]
        for src, dst in zip(hex_tokens[0::2], hex_tokens[1::2]):
            if not src:
                continue
            cmap.add(_code_bytes(int(src, 16), len(src)), decode_unicode_hex(dst))

    for section in _BFRANGE_RE.findall(data):
        tokens = _RANGE_TOKEN_RE.findall(section)
        idx = 0
        while idx + 2 < len(tokens):
            start_tok, end_tok, target = tokens[idx : idx + 3]
            idx += 3
            if not start_tok.startswith(b"<") or not end_tok.startswith(b"<"):
                continue
            start_hex = _hex_digits(start_tok[1:-1])
            end_hex = _hex_digits(end_tok[1:-1])
            if not start_hex or not end_hex:
                continue
            start, end = int(start_hex, 16), int(end_hex, 16)
            # codes are as wide as the start code; a wider end is clipped
            end = min(end, (1 << (8 * _code_width(len(start_hex)))) - 1)

            if target.startswith(b"["):
                values = [_hex_digits(m) for m in _HEX_RE.findall(target)]
                for offset, dst in enumerate(values):
                    if start + offset > end:
                        break
                    cmap.add(_code_bytes(start + offset, len(start_hex)), decode_unicode_hex(dst))
            else:
                dst = _hex_digits(target[1:-1])
                for offset in range(end - start + 1):
                    cmap.add(
                        _code_bytes(start + offset, len(start_hex)),
                        increment_unicode_hex(dst, offset),
                    )

    return cmap
