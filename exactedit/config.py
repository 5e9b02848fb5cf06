"""Centralised configuration for the exact text editor."""

from __future__ import annotations

import os

# -- Logging --
LOG_LEVEL = os.environ.get("EXACTEDIT_LOG_LEVEL", "INFO").upper()

# -- Upload limits --
MAX_UPLOAD_SIZE = 50 * 1024 * 1024  # 50 MB

# -- Font encodings --
# Simple encodings treated as byte value == code point (Latin scripts only).
SIMPLE_ENCODINGS: set[str] = {
    "WinAnsiEncoding",
    "MacRomanEncoding",
    "StandardEncoding",
}
IDENTITY_ENCODINGS: set[str] = {"Identity-H", "Identity-V"}

# Identity-H/V fonts without a ToUnicode map carry glyph ids, not text.
# When enabled, their codes are read as UTF-16BE units and become editable.
ALLOW_IDENTITY_WITHOUT_TOUNICODE = False

# -- Run matching --
INDEX_DISTANCE_WEIGHT = 10.0  # score per step between run index and sourceIndex
NORMALIZATION_PENALTY = 5.0  # added when only the normalized text matches

LIGATURES: dict[str, str] = {
    "\ufb00": "ff",
    "\ufb01": "fi",
    "\ufb02": "fl",
    "\ufb03": "ffi",
    "\ufb04": "ffl",
    "\ufb05": "ft",
    "\ufb06": "st",
}
