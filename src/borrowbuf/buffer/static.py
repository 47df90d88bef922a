"""Static storage: read-only blocks that live for the whole process.

Static blocks are interned by content, so wrapping the same literal twice
yields the same block.  They are never freed, never reallocated and never
written, and their guard sits permanently in ``SHARED_INFINITE``:
immutable views are handed out without taking a token, and any request
for exclusive access fails with ``ImmutableAccessError``.
"""
from __future__ import annotations

from typing import Final

from borrowbuf.config import BufferConfig, get_default_config, normalize_encoding
from borrowbuf.errors import ImmutableAccessError, InvalidEncodingError, OutOfBoundsError
from borrowbuf.guard.access import AccessGuard, Token
from borrowbuf.guard.origin import OriginKind, StorageOrigin
from borrowbuf.guard.rules import AccessSource, ViewMode, require_coercion
from borrowbuf.buffer.view import Lease, View
from borrowbuf.text.encoding import BytesLike, encode_text, is_char_boundary, validate_utf8

_UNSET: Final = object()

_INTERNED: dict[tuple[str, str | None], "StaticBlock"] = {}


class StaticBlock:
    """An immutable, program-lifetime byte block.

    Parameters
    ----------
    data:
        The block's content.
    encoding:
        ``"utf-8"`` for text blocks, ``None`` for raw bytes.
    """

    __slots__ = ("_data", "_origin", "_guard", "_encoding")

    def __init__(self, data: bytes, encoding: str | None = "utf-8") -> None:
        if encoding is not None:
            validate_utf8(data)
        self._data: bytes = data
        self._origin: StorageOrigin = StorageOrigin.static(data)
        self._guard: AccessGuard = AccessGuard(OriginKind.STATIC)
        self._encoding: str | None = encoding

    @property
    def guard(self) -> AccessGuard:
        return self._guard

    @property
    def encoding(self) -> str | None:
        return self._encoding

    @property
    def origin(self) -> StorageOrigin:
        return self._origin

    @property
    def epoch(self) -> int:
        """Always 0; static storage never resizes."""
        return self._guard.epoch

    def origin_kind(self) -> OriginKind:
        return OriginKind.STATIC

    def length(self) -> int:
        return len(self._data)

    def byte_at(self, index: int) -> int:
        return self._data[index]

    def read_bytes(self, start: int, end: int) -> bytes:
        return self._data[start:end]

    def rewrite(self, start: int, data: bytes) -> None:
        raise ImmutableAccessError("static storage is read-only")

    def __repr__(self) -> str:
        return f"StaticBlock(length={len(self._data)}, digest={self._origin.digest[:12]}...)"

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def borrow_immutable(self, start: int = 0, end: int | None = None) -> View:
        """Return an immutable view of ``[start, end)``; never fails on guard state."""
        require_coercion(AccessSource.STATIC, ViewMode.IMMUTABLE)
        stop = len(self._data) if end is None else end
        if not 0 <= start <= stop <= len(self._data):
            raise OutOfBoundsError(
                f"range [{start}, {stop}) out of bounds for static block of length {len(self._data)}",
                index=stop,
                limit=len(self._data),
            )
        if self._encoding is not None:
            for position in (start, stop):
                if not is_char_boundary(self._data, position):
                    raise InvalidEncodingError(
                        f"byte {position} is not on a character boundary", offset=position
                    )
        return View(self, Lease(self._guard, None), start, stop, ViewMode.IMMUTABLE)

    def borrow_mutable_fixed(self, start: int = 0, end: int | None = None) -> View:
        """Always refused: static storage cannot be borrowed mutably.

        Raises
        ------
        ImmutableAccessError
        """
        require_coercion(AccessSource.STATIC, ViewMode.MUTABLE_FIXED)
        raise ImmutableAccessError("static storage is read-only")

    def acquire_shared(self) -> Token:
        """Acquire a shared token from the static guard; always succeeds."""
        return self._guard.acquire_shared()

    def acquire_exclusive(self) -> Token:
        """Always refused with ``ImmutableAccessError``."""
        return self._guard.acquire_exclusive()

    def release(self, token: Token) -> None:
        self._guard.release(token)


def static_block(
    data: BytesLike | str,
    *,
    encoding: str | None | object = _UNSET,
    config: BufferConfig | None = None,
) -> StaticBlock:
    """Return the interned static block holding ``data``.

    Parameters
    ----------
    data:
        Bytes, or a string encoded as UTF-8.
    encoding:
        Text encoding of the block; defaults to the config's encoding.
    config:
        Config supplying the default encoding.

    Raises
    ------
    InvalidEncodingError
        If a text block's bytes do not decode.
    """
    cfg = config or get_default_config()
    enc = cfg.encoding if encoding is _UNSET else normalize_encoding(encoding)  # type: ignore[arg-type]
    raw = encode_text(data) if isinstance(data, str) else bytes(data)
    key = (StorageOrigin.static(raw).digest or "", enc)
    block = _INTERNED.get(key)
    if block is None:
        block = StaticBlock(raw, enc)
        _INTERNED[key] = block
    return block


def from_static(
    data: BytesLike | str,
    *,
    encoding: str | None | object = _UNSET,
    config: BufferConfig | None = None,
) -> View:
    """Wrap ``data`` as static storage and return an immutable view of all of it."""
    return static_block(data, encoding=encoding, config=config).borrow_immutable()
