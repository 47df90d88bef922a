"""Owned, growable storage and its single ``Owner``.

The ``Owner`` is the only component allowed to change a buffer's
length or reallocate it.  Every such operation takes the exclusive token
for its own duration, so it fails with ``ConflictError`` while any view
is outstanding, and bumps the guard's epoch once if the length changed
or the storage moved.  Views created before the bump fail with
``StaleViewError`` from then on.

Capacity only grows, doubling (by ``BufferConfig.growth_factor``) when a
write would overflow it.  ``shrink_to_fit`` is the one explicit
compaction operation that lowers it.

Usage
-----
::

    from borrowbuf import new_owned

    owner = new_owned("hello")
    with owner.borrow_mutable_fixed() as view:
        view.write(0, ord("H"))
    owner.push("!")
    owner.to_str()
    # 'Hello!'
"""
from __future__ import annotations

import contextlib
import logging
import warnings
from collections.abc import Iterator
from typing import Final

from borrowbuf.config import BufferConfig, get_default_config, normalize_encoding
from borrowbuf.errors import (
    ConflictError,
    DefunctOwnerError,
    InvalidEncodingError,
    OutOfBoundsError,
    OutstandingViewsError,
)
from borrowbuf.guard.access import AccessGuard, Token, report_contract_violation
from borrowbuf.guard.origin import OriginKind, StorageOrigin
from borrowbuf.guard.rules import AccessSource, ViewMode, require_coercion
from borrowbuf.buffer.view import Lease, View
from borrowbuf.text.encoding import (
    BytesLike,
    char_start,
    decode,
    encode_text,
    is_ascii,
    is_continuation,
    validate_utf8,
)

logger = logging.getLogger(__name__)

_UNSET: Final = object()


class OwnedStorage:
    """Resizable byte region managed by exactly one ``Owner``.

    ``len(self._data)`` is the capacity; only the first ``length`` bytes
    are in use.
    """

    __slots__ = ("_data", "_length", "_guard", "_encoding", "_config")

    def __init__(self, data: bytes, encoding: str | None, config: BufferConfig) -> None:
        self._data: bytearray = bytearray(data)
        self._length: int = len(data)
        self._guard: AccessGuard = AccessGuard(
            OriginKind.OWNED,
            thread_safe=config.thread_safe,
            strict_contracts=config.strict_contracts,
        )
        self._encoding: str | None = encoding
        self._config: BufferConfig = config

    @property
    def guard(self) -> AccessGuard:
        return self._guard

    @property
    def encoding(self) -> str | None:
        return self._encoding

    @property
    def config(self) -> BufferConfig:
        return self._config

    def origin_kind(self) -> OriginKind:
        return OriginKind.OWNED

    def length(self) -> int:
        return self._length

    def capacity(self) -> int:
        return len(self._data)

    def byte_at(self, index: int) -> int:
        return self._data[index]

    def read_bytes(self, start: int, end: int) -> bytes:
        return bytes(self._data[start:end])

    def rewrite(self, start: int, data: bytes) -> None:
        """Overwrite ``len(data)`` bytes in place; never changes the length."""
        self._data[start:start + len(data)] = data

    # ------------------------------------------------------------------
    # Owner-only resizing
    # ------------------------------------------------------------------

    def reallocate(self, capacity: int) -> None:
        moved = bytearray(capacity)
        moved[:self._length] = self._data[:self._length]
        logger.debug(
            "guard %d: reallocated %d -> %d bytes",
            self._guard.guard_id,
            len(self._data),
            capacity,
        )
        self._data = moved

    def ensure_capacity(self, needed: int) -> bool:
        """Grow so at least ``needed`` bytes fit; return True if storage moved."""
        if needed <= len(self._data):
            return False
        grown = max(needed, len(self._data) * self._config.growth_factor, self._config.min_capacity)
        self.reallocate(grown)
        return True

    def splice(self, start: int, end: int, data: bytes) -> bool:
        """Replace ``[start, end)`` with ``data``; return True if storage moved."""
        new_length = self._length - (end - start) + len(data)
        moved = self.ensure_capacity(new_length)
        tail = bytes(self._data[end:self._length])
        self._data[start:start + len(data)] = data
        self._data[start + len(data):new_length] = tail
        if new_length < self._length:
            self._data[new_length:self._length] = bytes(self._length - new_length)
        self._length = new_length
        return moved

    def describe(self) -> StorageOrigin:
        return StorageOrigin.owned(self._length, len(self._data))

    def free(self) -> None:
        self._data = bytearray()
        self._length = 0


class Owner:
    """Sole owner of a growable buffer.

    Owners are move-only: ``move()`` hands the storage and guard to a new
    Owner and leaves this one defunct.  Create one with ``new_owned``.

    Parameters
    ----------
    storage:
        The storage this Owner controls.
    """

    __slots__ = ("_storage", "__weakref__")

    def __init__(self, storage: OwnedStorage) -> None:
        self._storage: OwnedStorage | None = storage

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def guard(self) -> AccessGuard:
        return self._live().guard

    @property
    def epoch(self) -> int:
        return self._live().guard.epoch

    @property
    def encoding(self) -> str | None:
        return self._live().encoding

    @property
    def is_defunct(self) -> bool:
        """Return True once the Owner has been moved out or destroyed."""
        return self._storage is None

    def length(self) -> int:
        return self._live().length()

    def capacity(self) -> int:
        return self._live().capacity()

    def origin_kind(self) -> OriginKind:
        return OriginKind.OWNED

    def origin(self) -> StorageOrigin:
        return self._live().describe()

    def __len__(self) -> int:
        return self._live().length()

    def __repr__(self) -> str:
        if self._storage is None:
            return "Owner(defunct)"
        storage = self._storage
        return (
            f"Owner(length={storage.length()}, capacity={storage.capacity()}, "
            f"state={storage.guard.state.name}, epoch={storage.guard.epoch})"
        )

    def to_bytes(self) -> bytes:
        """Return a copy of the content.

        Raises
        ------
        ConflictError
            While a mutable fixed view holds the exclusive token.
        """
        storage = self._live()
        if storage.guard.exclusive_held:
            raise ConflictError("cannot read through the Owner while a mutable view is outstanding")
        return storage.read_bytes(0, storage.length())

    def to_str(self) -> str:
        """Decode the content as text."""
        return decode(self.to_bytes())

    # ------------------------------------------------------------------
    # Borrowing
    # ------------------------------------------------------------------

    def borrow_immutable(self, start: int = 0, end: int | None = None) -> View:
        """Acquire a shared token and return an immutable view of ``[start, end)``.

        Raises
        ------
        ConflictError
            If a mutable fixed view is outstanding.
        OutOfBoundsError
            If the range is outside the buffer.
        InvalidEncodingError
            In a text buffer, if either edge splits a character.
        """
        return self._borrow(ViewMode.IMMUTABLE, start, end)

    def borrow_mutable_fixed(self, start: int = 0, end: int | None = None) -> View:
        """Acquire the exclusive token and return a mutable fixed view.

        Raises
        ------
        ConflictError
            If any other view is outstanding.
        OutOfBoundsError
            If the range is outside the buffer.
        InvalidEncodingError
            In a text buffer, if either edge splits a character.
        """
        return self._borrow(ViewMode.MUTABLE_FIXED, start, end)

    def _borrow(self, mode: ViewMode, start: int, end: int | None) -> View:
        storage = self._live()
        stop = storage.length() if end is None else end
        self._check_range(start, stop)
        self._check_cut(start)
        self._check_cut(stop)
        rule = require_coercion(AccessSource.OWNER, mode)
        guard = storage.guard
        token = (
            guard.acquire_exclusive()
            if mode is ViewMode.MUTABLE_FIXED
            else guard.acquire_shared()
        )
        logger.debug("issued %s view [%d:%d) via %s", mode.name, start, stop, rule.action.name)
        return View(storage, Lease(guard, token), start, stop, mode)

    # ------------------------------------------------------------------
    # Length-changing mutation
    # ------------------------------------------------------------------

    def push(self, data: BytesLike | str | int) -> None:
        """Append a byte, a byte sequence or a string.

        Raises
        ------
        ConflictError
            If any view is outstanding.
        InvalidEncodingError
            In a text buffer, if ``data`` does not decode on its own.
        """
        with self._exclusive() as (storage, token):
            end = storage.length()
            payload = self._payload(data, end)
            self._check_fragment(payload, end)
            moved = storage.splice(end, end, payload)
            self._finish(token, changed=bool(payload), moved=moved)

    def push_str(self, text: str) -> None:
        """Append ``text`` encoded with the buffer's encoding."""
        self.push(text)

    def pop(self) -> int | None:
        """Remove and return the last byte, or None if the buffer is empty.

        Raises
        ------
        ConflictError
            If any view is outstanding, even when the buffer is empty.
        InvalidEncodingError
            In a text buffer, if the last byte ends a multi-byte
            character (use ``pop_char``).
        """
        with self._exclusive() as (storage, token):
            end = storage.length()
            if end == 0:
                return None
            last = storage.byte_at(end - 1)
            if storage.encoding is not None and not is_ascii(last):
                raise InvalidEncodingError(
                    "last byte ends a multi-byte character; use pop_char()",
                    offset=end - 1,
                )
            storage.splice(end - 1, end, b"")
            self._finish(token, changed=True, moved=False)
        return last

    def pop_char(self) -> str | None:
        """Remove and return the last character, or None if the buffer is empty.

        The tail is decoded before anything is removed, so a raw buffer
        whose last bytes are not UTF-8 is left untouched.
        """
        with self._exclusive() as (storage, token):
            end = storage.length()
            if end == 0:
                return None
            content = storage.read_bytes(0, end)
            start = char_start(content, end - 1)
            char = decode(content[start:])
            storage.splice(start, end, b"")
            self._finish(token, changed=True, moved=False)
        return char

    def insert_at(self, index: int, data: BytesLike | str | int) -> None:
        """Insert ``data`` before byte ``index``.

        Raises
        ------
        ConflictError
            If any view is outstanding.
        OutOfBoundsError
            If ``index`` is outside ``[0, length()]``.
        InvalidEncodingError
            In a text buffer, if ``index`` splits a character or ``data``
            does not decode on its own.
        """
        with self._exclusive() as (storage, token):
            self._check_range(index, index)
            self._check_cut(index)
            payload = self._payload(data, index)
            self._check_fragment(payload, index)
            moved = storage.splice(index, index, payload)
            self._finish(token, changed=bool(payload), moved=moved)

    def remove_range(self, start: int, end: int) -> bytes:
        """Remove and return bytes ``[start, end)``.

        Raises
        ------
        ConflictError
            If any view is outstanding.
        OutOfBoundsError
            If the range is outside the buffer.
        InvalidEncodingError
            In a text buffer, if either edge splits a character.
        """
        with self._exclusive() as (storage, token):
            self._check_range(start, end)
            self._check_cut(start)
            self._check_cut(end)
            removed = storage.read_bytes(start, end)
            storage.splice(start, end, b"")
            self._finish(token, changed=end > start, moved=False)
        return removed

    def truncate(self, length: int) -> None:
        """Shorten the buffer to ``length`` bytes; no-op if already shorter."""
        with self._exclusive() as (storage, token):
            if length < 0:
                raise OutOfBoundsError(f"cannot truncate to {length} bytes", index=length, limit=0)
            current = storage.length()
            if length >= current:
                return
            self._check_cut(length)
            storage.splice(length, current, b"")
            self._finish(token, changed=True, moved=False)

    def clear(self) -> None:
        """Remove all content, keeping the capacity."""
        self.truncate(0)

    # ------------------------------------------------------------------
    # Capacity management
    # ------------------------------------------------------------------

    def reserve(self, additional: int) -> None:
        """Make room for at least ``additional`` more bytes without reallocating."""
        with self._exclusive() as (storage, token):
            if additional < 0:
                raise ValueError(f"additional must be >= 0, got {additional}")
            moved = storage.ensure_capacity(storage.length() + additional)
            self._finish(token, changed=False, moved=moved)

    def shrink_to_fit(self) -> None:
        """Release unused capacity; the only operation that lowers capacity."""
        with self._exclusive() as (storage, token):
            moved = storage.capacity() > storage.length()
            if moved:
                storage.reallocate(storage.length())
            self._finish(token, changed=False, moved=moved)

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def move(self) -> "Owner":
        """Transfer the storage and guard to a new Owner.

        Raises
        ------
        ConflictError
            If any view is outstanding.
        """
        storage = self._live()
        if not storage.guard.is_idle:
            raise ConflictError(f"cannot move {self!r} while views are outstanding")
        self._storage = None
        logger.debug("guard %d: ownership moved", storage.guard.guard_id)
        return Owner(storage)

    def destroy(self) -> None:
        """Free the storage.

        Raises
        ------
        OutstandingViewsError
            If any view is still outstanding.
        """
        storage = self._live()
        guard = storage.guard
        if not guard.is_idle:
            message = (
                f"cannot destroy {self!r}: {guard.shared_count} shared, "
                f"exclusive={guard.exclusive_held}"
            )
            report_contract_violation(message, strict=guard.strict_contracts)
            raise OutstandingViewsError(message)
        storage.free()
        self._storage = None
        logger.debug("guard %d: storage freed", guard.guard_id)

    def __enter__(self) -> "Owner":
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._storage is not None:
            self.destroy()

    def __del__(self) -> None:
        storage = getattr(self, "_storage", None)
        if storage is None or storage.guard.is_idle:
            return
        if storage.config.warn_on_leak:
            warnings.warn(
                f"Owner collected with outstanding views ({storage.guard!r})",
                ResourceWarning,
                stacklevel=2,
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _live(self) -> OwnedStorage:
        if self._storage is None:
            raise DefunctOwnerError("Owner was moved out or destroyed")
        return self._storage

    @contextlib.contextmanager
    def _exclusive(self) -> Iterator[tuple[OwnedStorage, Token]]:
        storage = self._live()
        token = storage.guard.acquire_exclusive()
        try:
            yield storage, token
        finally:
            storage.guard.release_exclusive(token)

    def _finish(self, token: Token, *, changed: bool, moved: bool) -> None:
        if changed or moved:
            self._live().guard.bump_epoch_on_resize(token)

    def _payload(self, data: BytesLike | str | int, offset: int) -> bytes:
        if isinstance(data, int):
            if not 0 <= data <= 0xFF:
                raise ValueError(f"byte must be in range(0, 256), got {data}")
            return bytes((data,))
        if isinstance(data, str):
            return encode_text(data, offset=offset)
        return bytes(data)

    def _check_range(self, start: int, end: int) -> None:
        length = self._live().length()
        if not 0 <= start <= end <= length:
            raise OutOfBoundsError(
                f"range [{start}, {end}) out of bounds for buffer of length {length}",
                index=end,
                limit=length,
            )

    def _check_cut(self, position: int) -> None:
        storage = self._live()
        if storage.encoding is None:
            return
        if 0 < position < storage.length() and is_continuation(storage.byte_at(position)):
            raise InvalidEncodingError(
                f"byte {position} is not on a character boundary", offset=position
            )

    def _check_fragment(self, payload: bytes, offset: int) -> None:
        if self._live().encoding is not None:
            validate_utf8(payload, offset=offset)


def new_owned(
    data: BytesLike | str = b"",
    *,
    encoding: str | None | object = _UNSET,
    config: BufferConfig | None = None,
) -> Owner:
    """Allocate owned storage holding ``data`` and return its Owner.

    Parameters
    ----------
    data:
        Initial content; strings are encoded as UTF-8.
    encoding:
        ``"utf-8"`` for a text buffer, ``None`` for raw bytes.  Defaults
        to the config's encoding.
    config:
        Growth and guard settings; defaults to ``get_default_config()``.

    Returns
    -------
    Owner
        An Owner whose capacity equals ``len(data)``.

    Raises
    ------
    InvalidEncodingError
        If a text buffer's initial bytes do not decode.
    """
    cfg = config or get_default_config()
    enc = cfg.encoding if encoding is _UNSET else normalize_encoding(encoding)  # type: ignore[arg-type]
    raw = encode_text(data) if isinstance(data, str) else bytes(data)
    if enc is not None:
        validate_utf8(raw)
    return Owner(OwnedStorage(raw, enc, cfg))
