"""Font encodings: decode shown strings to text and encode text back."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

import pymupdf

from . import config
from .cmap import ToUnicodeCMap, parse_tounicode_cmap
from .errors import FontEncodingUnavailable, UnencodableCharacter

logger = logging.getLogger(__name__)

_REF_RE = re.compile(r"(\d+)\s+\d+\s+R")
_BASE_ENCODING_RE = re.compile(r"/BaseEncoding\s*/([\w.-]+)")


class SimpleEncoding(Enum):
    NONE = "none"
    LATIN1 = "latin1"
    DOUBLE_BYTE_BE = "double_byte_be"


@dataclass
class FontEncoding:
    """How one named font resource of a page maps codes to text.

    Either ``code_to_unicode`` (from a ToUnicode CMap) or ``simple_kind`` is
    the active decode path. ``unicode_to_code`` is only used to re-encode.
    """

    resource_name: str
    base_font: str = "UnknownFont"
    code_to_unicode: dict[bytes, str] | None = None
    unicode_to_code: dict[str, bytes] | None = None
    code_byte_lengths: tuple[int, ...] = (1,)
    max_unicode_len: int = 1
    simple_kind: SimpleEncoding = SimpleEncoding.NONE
    editable: bool = False

    @classmethod
    def from_cmap(cls, resource_name: str, base_font: str, cmap: ToUnicodeCMap) -> FontEncoding:
        return cls(
            resource_name=resource_name,
            base_font=base_font,
            code_to_unicode=cmap.forward,
            unicode_to_code=cmap.reverse,
            code_byte_lengths=tuple(sorted(cmap.code_lengths, reverse=True)),
            max_unicode_len=cmap.max_unicode_len,
            editable=True,
        )

    @classmethod
    def latin1(cls, resource_name: str, base_font: str = "UnknownFont") -> FontEncoding:
        return cls(resource_name, base_font, simple_kind=SimpleEncoding.LATIN1, editable=True)

    @classmethod
    def identity(cls, resource_name: str, base_font: str = "UnknownFont") -> FontEncoding:
        return cls(
            resource_name,
            base_font,
            code_byte_lengths=(2,),
            simple_kind=SimpleEncoding.DOUBLE_BYTE_BE,
            editable=config.ALLOW_IDENTITY_WITHOUT_TOUNICODE,
        )

    @property
    def label(self) -> str:
        return f"/{self.resource_name} ({self.base_font})"

    def decode(self, data: bytes) -> tuple[str, int] | None:
        """Return ``(text, code_count)``, or ``None`` if *data* is not decodable."""
        if self.code_to_unicode is not None:
            return self._decode_cmap(data)
        if self.simple_kind is SimpleEncoding.LATIN1:
            return data.decode("latin-1"), len(data)
        if self.simple_kind is SimpleEncoding.DOUBLE_BYTE_BE:
            if len(data) % 2:
                return None
            text = "".join(
                chr(int.from_bytes(data[i : i + 2], "big")) for i in range(0, len(data), 2)
            )
            return text, len(data) // 2
        return None

    def _decode_cmap(self, data: bytes) -> tuple[str, int] | None:
        chars = []
        i = 0
        while i < len(data):
            for length in self.code_byte_lengths:
                if i + length > len(data):
                    continue
                mapped = self.code_to_unicode.get(data[i : i + length])
                if mapped is not None:
                    chars.append(mapped)
                    i += length
                    break
            else:
                return None
        return "".join(chars), len(chars)

    def encode(self, text: str) -> tuple[bytes, int]:
        """Encode *text* in this font, returning ``(bytes, code_count)``.

        Raises ``FontEncodingUnavailable`` or ``UnencodableCharacter``.
        """
        if not self.editable:
            raise FontEncodingUnavailable(f"Font {self.label} has no usable text encoding")
        if self.unicode_to_code is not None:
            return self._encode_cmap(text)
        if self.simple_kind is SimpleEncoding.LATIN1:
            for ch in text:
                if ord(ch) > 0xFF:
                    raise UnencodableCharacter(
                        f"Character {ch!r} cannot be shown by single-byte font {self.label}"
                    )
            return text.encode("latin-1"), len(text)
        if self.simple_kind is SimpleEncoding.DOUBLE_BYTE_BE:
            raw = bytearray()
            for ch in text:
                code = ord(ch)
                if code > 0xFFFF or 0xD800 <= code <= 0xDFFF:
                    raise UnencodableCharacter(
                        f"Character {ch!r} needs a surrogate pair, unsupported by {self.label}"
                    )
                raw.extend(code.to_bytes(2, "big"))
            return bytes(raw), len(text)
        raise FontEncodingUnavailable(f"Font {self.label} has no usable text encoding")

    def _encode_cmap(self, text: str) -> tuple[bytes, int]:
        reverse = self.unicode_to_code
        raw = bytearray()
        count = 0
        i = 0
        while i < len(text):
            limit = min(self.max_unicode_len, len(text) - i)
            for length in range(limit, 0, -1):
                code = reverse.get(text[i : i + length])
                if code is not None:
                    i += length
                    break
            else:
                # no substitutes: the font must show exactly the requested text
                raise UnencodableCharacter(
                    f"Character {text[i]!r} is not in the ToUnicode map of {self.label}"
                )
            raw.extend(code)
            count += 1
        return bytes(raw), count


def _ref_xref(value: str) -> int | None:
    m = _REF_RE.search(value)
    return int(m.group(1)) if m else None


def _tounicode_xref(doc: pymupdf.Document, font_xref: int) -> int | None:
    kind, value = doc.xref_get_key(font_xref, "ToUnicode")
    if kind != "xref":
        return None
    return _ref_xref(value)


def _descendant_xref(doc: pymupdf.Document, font_xref: int) -> int | None:
    """First entry of /DescendantFonts, which may itself be an indirect array."""
    kind, value = doc.xref_get_key(font_xref, "DescendantFonts")
    if kind == "xref":
        array_xref = _ref_xref(value)
        if array_xref is None:
            return None
        value = doc.xref_object(array_xref, compressed=True)
    elif kind != "array":
        return None
    return _ref_xref(value)


def _encoding_name(doc: pymupdf.Document, font_xref: int) -> tuple[str | None, bool]:
    """Return ``(encoding name, has /Differences)`` for a font dictionary."""
    kind, value = doc.xref_get_key(font_xref, "Encoding")
    if kind == "name":
        return value.lstrip("/"), False
    if kind == "xref":
        enc_xref = _ref_xref(value)
        if enc_xref is None:
            return None, False
        value = doc.xref_object(enc_xref, compressed=True)
    elif kind != "dict":
        return None, False
    m = _BASE_ENCODING_RE.search(value)
    return (m.group(1) if m else None), "/Differences" in value


def resolve_font_encoding(
    doc: pymupdf.Document, font_xref: int, resource_name: str, base_font: str
) -> FontEncoding:
    """Build the encoding of one font dictionary.

    A ToUnicode CMap (on the font, else on its descendant) wins; otherwise
    only Identity and the Latin simple encodings are recognised.
    """
    tounicode = _tounicode_xref(doc, font_xref)
    if tounicode is None:
        descendant = _descendant_xref(doc, font_xref)
        if descendant is not None:
            tounicode = _tounicode_xref(doc, descendant)

    if tounicode is not None:
        data = doc.xref_stream(tounicode)
        cmap = parse_tounicode_cmap(data) if data else None
        if cmap is not None and cmap.forward:
            return FontEncoding.from_cmap(resource_name, base_font, cmap)
        logger.debug("Empty ToUnicode map for font %s (%s)", resource_name, base_font)

    encoding, has_differences = _encoding_name(doc, font_xref)
    if encoding in config.IDENTITY_ENCODINGS:
        return FontEncoding.identity(resource_name, base_font)
    if encoding in config.SIMPLE_ENCODINGS and not has_differences:
        return FontEncoding.latin1(resource_name, base_font)
    return FontEncoding(resource_name, base_font)


def resolve_page_encodings(doc: pymupdf.Document, page: pymupdf.Page) -> dict[str, FontEncoding]:
    """Resolve every font resource of *page*, keyed by resource name."""
    encodings: dict[str, FontEncoding] = {}
    # (xref, ext, type, basefont, name, encoding, referencer)
    for entry in page.get_fonts(full=True):
        font_xref, base_font, name = entry[0], entry[3], entry[4]
        referencer = entry[6] if len(entry) > 6 else 0
        if referencer not in (0, page.xref) or name in encodings:
            continue  # fonts of form XObjects are not shown by the page stream
        if not font_xref:
            encodings[name] = FontEncoding(name, base_font or "UnknownFont")
            continue
        encodings[name] = resolve_font_encoding(doc, font_xref, name, base_font or "UnknownFont")
        logger.debug(
            "Font /%s (%s): cmap=%s simple=%s editable=%s",
            name,
            base_font,
            encodings[name].code_to_unicode is not None,
            encodings[name].simple_kind.value,
            encodings[name].editable,
        )
    return encodings
