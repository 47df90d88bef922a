"""Non-owning views over static or owned storage.

A ``View`` is a handle ``{target, created_epoch, [start, end), mode}``.
It never owns bytes.  Every operation first checks that the view is
still valid:

- it has not been released,
- the borrow (lease) it belongs to is still live,
- for owned targets, the target's epoch still equals the epoch the view
  was created at.

An invalid view fails every operation with ``StaleViewError``.

Immutable views only read.  Mutable fixed views may rewrite existing
bytes in place but can never change the buffer's length; the
length-changing methods exist on ``View`` only to refuse with
``FixedCapacityError`` (or ``ImmutableAccessError`` on immutable views).
"""
from __future__ import annotations

import logging
from typing import Protocol

from borrowbuf.errors import (
    ConflictError,
    DoubleReleaseError,
    FixedCapacityError,
    ImmutableAccessError,
    InvalidEncodingError,
    OutOfBoundsError,
    StaleViewError,
)
from borrowbuf.guard.access import AccessGuard, Token, report_contract_violation
from borrowbuf.guard.origin import OriginKind
from borrowbuf.guard.rules import AccessSource, GuardAction, ViewMode, require_coercion
from borrowbuf.text.encoding import (
    BytesLike,
    char_count,
    decode,
    encode_text,
    is_ascii,
    is_continuation,
    validate_utf8,
)

logger = logging.getLogger(__name__)


class BufferTarget(Protocol):
    """What a view needs from the storage it points at."""

    @property
    def guard(self) -> AccessGuard: ...

    @property
    def encoding(self) -> str | None: ...

    def origin_kind(self) -> OriginKind: ...

    def length(self) -> int: ...

    def byte_at(self, index: int) -> int: ...

    def read_bytes(self, start: int, end: int) -> bytes: ...

    def rewrite(self, start: int, data: bytes) -> None: ...


class Lease:
    """One borrow of a target: the token it holds and whether it is live.

    A lease is shared by the view that acquired it and every slice taken
    from that view.  Ending the lease returns the token to the guard and
    makes all of those views stale at once.
    """

    __slots__ = ("guard", "token", "live")

    def __init__(self, guard: AccessGuard, token: Token | None) -> None:
        self.guard = guard
        self.token = token
        self.live = True

    def end(self) -> None:
        if self.token is not None:
            self.guard.release(self.token)
        self.live = False


def _mode_source(mode: ViewMode, origin: OriginKind) -> AccessSource:
    if origin is OriginKind.STATIC:
        return AccessSource.STATIC
    if mode is ViewMode.MUTABLE_FIXED:
        return AccessSource.MUTABLE_FIXED
    return AccessSource.IMMUTABLE


class View:
    """Handle granting read (and optionally fixed-length write) access.

    Views are created by ``Owner.borrow_immutable``,
    ``Owner.borrow_mutable_fixed``, ``from_static`` and ``View.slice``;
    do not construct them directly.

    Parameters
    ----------
    target:
        The storage the view reads from.
    lease:
        The borrow this view belongs to.
    start, end:
        Absolute byte range ``[start, end)`` within the target.
    mode:
        ``ViewMode.IMMUTABLE`` or ``ViewMode.MUTABLE_FIXED``.
    owns_lease:
        True if releasing this view ends the lease.
    """

    __slots__ = (
        "_target",
        "_lease",
        "_created_epoch",
        "_start",
        "_end",
        "_mode",
        "_owns_lease",
        "_released",
    )

    def __init__(
        self,
        target: BufferTarget,
        lease: Lease,
        start: int,
        end: int,
        mode: ViewMode,
        *,
        owns_lease: bool = True,
    ) -> None:
        self._target = target
        self._lease = lease
        self._created_epoch = target.guard.epoch
        self._start = start
        self._end = end
        self._mode = mode
        self._owns_lease = owns_lease
        self._released = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def mode(self) -> ViewMode:
        return self._mode

    @property
    def target(self) -> BufferTarget:
        return self._target

    @property
    def created_epoch(self) -> int:
        """Epoch of the target at the moment this view was created."""
        return self._created_epoch

    @property
    def byte_range(self) -> tuple[int, int]:
        """Absolute ``(start, end)`` of this view within its target."""
        return (self._start, self._end)

    @property
    def encoding(self) -> str | None:
        return self._target.encoding

    @property
    def token(self) -> Token | None:
        """Token held by this view's lease, ``None`` for static views."""
        return self._lease.token

    def origin_kind(self) -> OriginKind:
        return self._target.origin_kind()

    def length(self) -> int:
        return self._end - self._start

    def __len__(self) -> int:
        return self._end - self._start

    def is_valid(self) -> bool:
        """Return True if operations through this view are currently allowed."""
        return self._stale_reason() is None

    def __repr__(self) -> str:
        state = "valid" if self.is_valid() else "stale"
        return (
            f"View({self._mode.name}, {self.origin_kind().name}, "
            f"[{self._start}:{self._end}), epoch={self._created_epoch}, {state})"
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read(self, index: int) -> int:
        """Return the byte at ``index`` (relative to the view).

        Raises
        ------
        StaleViewError
            If the view is no longer valid.
        OutOfBoundsError
            If ``index`` is outside ``[0, len(view))``.
        """
        self._check_valid()
        if not 0 <= index < len(self):
            raise OutOfBoundsError(
                f"index {index} out of range for view of length {len(self)}",
                index=index,
                limit=len(self),
            )
        return self._target.byte_at(self._start + index)

    def read_range(self, start: int, end: int) -> bytes:
        """Return a copy of bytes ``[start, end)`` (relative to the view).

        Raises
        ------
        StaleViewError
            If the view is no longer valid.
        OutOfBoundsError
            If the range is not within ``[0, len(view)]``.
        """
        self._check_valid()
        self._check_range(start, end)
        return self._target.read_bytes(self._start + start, self._start + end)

    def __bytes__(self) -> bytes:
        return self.read_range(0, len(self))

    def read_text(self, start: int = 0, end: int | None = None) -> str:
        """Decode bytes ``[start, end)`` as text.

        Raises
        ------
        InvalidEncodingError
            If either edge splits a character or the bytes do not decode.
        """
        self._check_valid()
        stop = len(self) if end is None else end
        self._check_range(start, stop)
        self._check_boundaries(self._start + start, self._start + stop)
        return decode(self._target.read_bytes(self._start + start, self._start + stop))

    def chars(self) -> list[str]:
        """Return the characters of the view in order."""
        return list(self.read_text())

    def char_at(self, index: int) -> str | None:
        """Return the character at character index ``index``, or None."""
        text = self.read_text()
        if 0 <= index < len(text):
            return text[index]
        return None

    def char_count(self) -> int:
        """Return the number of characters in the view."""
        self._check_valid()
        return char_count(self._target.read_bytes(self._start, self._end))

    # ------------------------------------------------------------------
    # In-place writes
    # ------------------------------------------------------------------

    def write(self, index: int, byte: int | str | bytes) -> None:
        """Overwrite the byte at ``index`` (relative to the view).

        In a text buffer only a single-byte character may be replaced by
        another single-byte character; anything else would split or
        create a multi-byte sequence.

        Raises
        ------
        StaleViewError
            If the view is no longer valid.
        ImmutableAccessError
            If the view is not a mutable fixed view.
        OutOfBoundsError
            If ``index`` is outside the view.
        InvalidEncodingError
            If the write would split or create a multi-byte character.
        """
        self._check_writable()
        if not 0 <= index < len(self):
            raise OutOfBoundsError(
                f"index {index} out of range for view of length {len(self)}",
                index=index,
                limit=len(self),
            )
        if isinstance(byte, (str, bytes)):
            encoded = self._payload(byte, self._start + index)
            if len(encoded) != 1:
                raise InvalidEncodingError(
                    f"{byte!r} is {len(encoded)} bytes long; use replace_range for multi-byte characters"
                )
            byte = encoded[0]
        if not 0 <= byte <= 0xFF:
            raise ValueError(f"byte must be in range(0, 256), got {byte}")
        position = self._start + index
        if self._target.encoding is not None:
            current = self._target.byte_at(position)
            if not is_ascii(current):
                raise InvalidEncodingError(
                    f"byte {position} is inside a multi-byte character; "
                    "use replace_range with a whole character",
                    offset=position,
                )
            if not is_ascii(byte):
                raise InvalidEncodingError(
                    f"byte 0x{byte:02X} cannot stand alone in UTF-8 text",
                    offset=position,
                )
        self._target.rewrite(position, bytes((byte,)))

    def replace_range(self, start: int, end: int, data: BytesLike | str) -> None:
        """Replace bytes ``[start, end)`` with ``data`` of the same length.

        Raises
        ------
        StaleViewError
            If the view is no longer valid.
        ImmutableAccessError
            If the view is not a mutable fixed view.
        OutOfBoundsError
            If the range is outside the view.
        FixedCapacityError
            If ``len(data)`` differs from ``end - start``.
        InvalidEncodingError
            In a text buffer, if either edge splits a character or
            ``data`` does not decode on its own.
        """
        self._check_writable()
        self._check_range(start, end)
        payload = self._payload(data, self._start + start)
        if len(payload) != end - start:
            raise FixedCapacityError(
                f"replacement of {len(payload)} bytes cannot fill a {end - start}-byte "
                "range through a fixed view"
            )
        if self._target.encoding is not None:
            self._check_boundaries(self._start + start, self._start + end)
            validate_utf8(payload, offset=self._start + start)
        self._target.rewrite(self._start + start, payload)

    def write_range(self, start: int, data: BytesLike | str) -> None:
        """Overwrite ``len(data)`` bytes beginning at ``start``."""
        self.replace_range(start, start + len(self._payload(data, self._start + start)), data)

    # ------------------------------------------------------------------
    # Length-changing operations (always refused)
    # ------------------------------------------------------------------

    def push(self, data: BytesLike | str | int) -> None:
        """Refuse: a view cannot grow its buffer."""
        self._refuse_resize("push")

    def pop(self) -> int | None:
        """Refuse: a view cannot shrink its buffer."""
        self._refuse_resize("pop")
        return None

    def insert_at(self, index: int, data: BytesLike | str) -> None:
        """Refuse: a view cannot grow its buffer."""
        self._refuse_resize("insert_at")

    def remove_range(self, start: int, end: int) -> bytes:
        """Refuse: a view cannot shrink its buffer."""
        self._refuse_resize("remove_range")
        return b""

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def slice(self, start: int, end: int) -> "View":
        """Return an immutable sub-view of ``[start, end)`` sharing this borrow.

        The slice holds no token of its own; it becomes stale when this
        view's borrow ends.

        Raises
        ------
        ConflictError
            If this is a mutable fixed view (call ``to_immutable`` first).
        InvalidEncodingError
            In a text buffer, if either edge splits a character.
        """
        self._check_valid()
        if self._mode is ViewMode.MUTABLE_FIXED:
            raise ConflictError(
                "cannot slice a mutable fixed view; convert it with to_immutable() first"
            )
        self._check_range(start, end)
        if self._target.encoding is not None:
            self._check_boundaries(self._start + start, self._start + end)
        return View(
            self._target,
            self._lease,
            self._start + start,
            self._start + end,
            ViewMode.IMMUTABLE,
            owns_lease=False,
        )

    def to_immutable(self) -> "View":
        """Coerce this view to an immutable view.

        An immutable view is returned unchanged.  A mutable fixed view
        trades its exclusive token for a shared one atomically; the
        mutable view is consumed and the new immutable view takes over
        the borrow.
        """
        self._check_valid()
        rule = require_coercion(
            _mode_source(self._mode, self.origin_kind()), ViewMode.IMMUTABLE
        )
        token = self._lease.token
        if rule.action is not GuardAction.DOWNGRADE or token is None:
            return self
        self._lease.token = self._lease.guard.downgrade(token)
        view = View(
            self._target,
            self._lease,
            self._start,
            self._end,
            ViewMode.IMMUTABLE,
            owns_lease=self._owns_lease,
        )
        view._created_epoch = self._created_epoch
        self._owns_lease = False
        self._released = True
        logger.debug("downgraded %r to an immutable view", self)
        return view

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def release(self) -> None:
        """Return this view's token to the guard.

        Raises
        ------
        DoubleReleaseError
            If the view was already released.
        """
        if self._released:
            message = f"{self!r} was already released"
            report_contract_violation(message, strict=self._lease.guard.strict_contracts)
            raise DoubleReleaseError(message)
        self._released = True
        if self._owns_lease and self._lease.live:
            self._lease.end()

    def __enter__(self) -> "View":
        return self

    def __exit__(self, *exc_info: object) -> None:
        if not self._released:
            self.release()

    def __del__(self) -> None:
        if getattr(self, "_released", True) or not self._owns_lease:
            return
        lease = self._lease
        if lease.live and (lease.token is None or lease.guard.holds(lease.token)):
            lease.end()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _stale_reason(self) -> str | None:
        if self.origin_kind() is OriginKind.OWNED and (
            self._target.guard.epoch != self._created_epoch
        ):
            return (
                f"view created at epoch {self._created_epoch} but storage is now "
                f"at epoch {self._target.guard.epoch}"
            )
        if self._released:
            return "view has been released"
        if not self._lease.live:
            return "the borrow this view belongs to has ended"
        return None

    def _check_valid(self) -> None:
        reason = self._stale_reason()
        if reason is not None:
            raise StaleViewError(reason)

    def _check_writable(self) -> None:
        self._check_valid()
        if not self._mode.can_write:
            raise ImmutableAccessError(f"cannot write through {self!r}")

    def _check_range(self, start: int, end: int) -> None:
        if not 0 <= start <= end <= len(self):
            raise OutOfBoundsError(
                f"range [{start}, {end}) out of bounds for view of length {len(self)}",
                index=end,
                limit=len(self),
            )

    def _check_boundaries(self, start: int, end: int) -> None:
        limit = self._target.length()
        for position in (start, end):
            if 0 < position < limit and is_continuation(self._target.byte_at(position)):
                raise InvalidEncodingError(
                    f"byte {position} is not on a character boundary",
                    offset=position,
                )

    def _payload(self, data: BytesLike | str, offset: int) -> bytes:
        if isinstance(data, str):
            return encode_text(data, offset=offset)
        return bytes(data)

    def _refuse_resize(self, operation: str) -> None:
        self._check_valid()
        if not self._mode.can_write:
            raise ImmutableAccessError(f"cannot {operation} through {self!r}")
        raise FixedCapacityError(
            f"cannot {operation} through a fixed view; only the Owner can change length"
        )
