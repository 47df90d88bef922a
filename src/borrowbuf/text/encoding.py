"""UTF-8 helpers for text-aware buffer operations.

A text buffer stores UTF-8, so one character may occupy one to four
bytes.  Byte offsets are therefore not character offsets: ``"Hello世界"``
is 11 bytes long but holds 7 characters, and only offsets 0, 5, 8 and 11
fall on character boundaries.  The helpers here answer the questions
the buffer layer needs before it lets a write or a cut through:

- Is this byte offset a character boundary?
- Does this run of bytes decode on its own?
- Which character sits at character index *n*?
"""
from __future__ import annotations

from collections.abc import Iterator
from typing import Final, Union

from borrowbuf.errors import InvalidEncodingError

BytesLike = Union[bytes, bytearray, memoryview]

_CONTINUATION_MASK: Final[int] = 0xC0
_CONTINUATION_TAG: Final[int] = 0x80


def is_continuation(byte: int) -> bool:
    """Return True for a UTF-8 continuation byte (``10xxxxxx``)."""
    return (byte & _CONTINUATION_MASK) == _CONTINUATION_TAG


def is_ascii(byte: int) -> bool:
    """Return True for a single-byte (ASCII) code unit."""
    return byte < 0x80


def sequence_length(lead: int) -> int:
    """Return the encoded length announced by a lead byte, or 0 if invalid."""
    if lead < 0x80:
        return 1
    if 0xC2 <= lead <= 0xDF:
        return 2
    if 0xE0 <= lead <= 0xEF:
        return 3
    if 0xF0 <= lead <= 0xF4:
        return 4
    return 0


def is_char_boundary(data: BytesLike, index: int) -> bool:
    """Return True if ``index`` lies between two characters of ``data``.

    Both ends (``0`` and ``len(data)``) are boundaries; indices outside
    ``[0, len(data)]`` are not.
    """
    if index == 0 or index == len(data):
        return True
    if index < 0 or index > len(data):
        return False
    return not is_continuation(data[index])


def char_start(data: BytesLike, index: int) -> int:
    """Return the offset of the first byte of the character covering ``index``."""
    while index > 0 and is_continuation(data[index]):
        index -= 1
    return index


def validate_utf8(data: BytesLike, offset: int = 0) -> None:
    """Check that ``data`` decodes as UTF-8 on its own.

    Parameters
    ----------
    data:
        Bytes to check.
    offset:
        Offset of ``data`` within its buffer, added to the reported
        error position.

    Raises
    ------
    InvalidEncodingError
        If ``data`` is not well-formed UTF-8.
    """
    try:
        bytes(data).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidEncodingError(
            f"malformed UTF-8 at byte {offset + exc.start}: {exc.reason}",
            offset=offset + exc.start,
        ) from None


def encode_text(text: str, offset: int = 0) -> bytes:
    """Encode ``text`` as UTF-8.

    Parameters
    ----------
    text:
        String to encode.
    offset:
        Byte offset the encoded text will occupy in its buffer, added to
        the reported error position.

    Raises
    ------
    InvalidEncodingError
        If ``text`` holds a lone surrogate, which has no UTF-8 form.
    """
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as exc:
        position = offset + len(text[:exc.start].encode("utf-8"))
        raise InvalidEncodingError(
            f"cannot encode {text[exc.start]!r} at byte {position}: {exc.reason}",
            offset=position,
        ) from None


def decode(data: BytesLike) -> str:
    """Decode ``data`` as UTF-8, raising ``InvalidEncodingError`` on failure."""
    validate_utf8(data)
    return bytes(data).decode("utf-8")


def char_spans(data: BytesLike) -> Iterator[tuple[int, str]]:
    """Yield ``(byte_offset, character)`` pairs for every character in ``data``."""
    offset = 0
    for ch in decode(data):
        yield offset, ch
        offset += len(ch.encode("utf-8"))


def char_count(data: BytesLike) -> int:
    """Return the number of characters (code points) in ``data``."""
    return sum(1 for b in bytes(data) if not is_continuation(b))


def char_at(data: BytesLike, index: int) -> str | None:
    """Return the character at character index ``index``, or None past the end."""
    if index < 0:
        return None
    for position, (_, ch) in enumerate(char_spans(data)):
        if position == index:
            return ch
    return None


def take_chars(data: BytesLike, n: int) -> str:
    """Return the first ``n`` characters of ``data`` as a string."""
    return decode(data)[:max(n, 0)]


__all__ = [
    "BytesLike",
    "is_continuation",
    "is_ascii",
    "sequence_length",
    "is_char_boundary",
    "char_start",
    "validate_utf8",
    "decode",
    "encode_text",
    "char_spans",
    "char_count",
    "char_at",
    "take_chars",
]
