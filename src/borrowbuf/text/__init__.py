"""Text module.

Exports the UTF-8 boundary and code-point helpers.  In-place transforms
live in ``borrowbuf.text.transforms``, which depends on the buffer layer.
"""
from __future__ import annotations

from borrowbuf.text.encoding import (
    char_at,
    char_count,
    char_spans,
    char_start,
    decode,
    encode_text,
    is_char_boundary,
    is_continuation,
    take_chars,
    validate_utf8,
)

__all__ = [
    "char_at",
    "char_count",
    "char_spans",
    "char_start",
    "decode",
    "encode_text",
    "is_char_boundary",
    "is_continuation",
    "take_chars",
    "validate_utf8",
]
