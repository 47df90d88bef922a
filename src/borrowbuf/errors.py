"""Error taxonomy for borrowbuf.

Every failure raised by the library is a ``BorrowError`` carrying an
``ErrorKind``.  Callers that only care about the category can catch
``BorrowError`` and switch on ``exc.kind``; callers that want a narrow
handler can catch the concrete subclass.

Two kinds, ``OUTSTANDING_VIEWS`` and ``DOUBLE_RELEASE``, signal a broken
caller-side contract rather than an expected runtime condition.  Their
classes derive from ``ContractViolationError`` so test suites and debug
builds can treat them as programming errors.
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Category of a buffer access failure."""

    CONFLICT = "conflict"
    STALE_VIEW = "stale_view"
    FIXED_CAPACITY_VIOLATION = "fixed_capacity_violation"
    IMMUTABLE_ACCESS = "immutable_access"
    OUT_OF_BOUNDS = "out_of_bounds"
    INVALID_ENCODING = "invalid_encoding"
    OUTSTANDING_VIEWS = "outstanding_views"
    DOUBLE_RELEASE = "double_release"
    DEFUNCT_OWNER = "defunct_owner"

    @property
    def is_contract_violation(self) -> bool:
        """Return True for kinds that indicate a caller programming error."""
        return self in (ErrorKind.OUTSTANDING_VIEWS, ErrorKind.DOUBLE_RELEASE)


class BorrowError(Exception):
    """Base exception for all borrowbuf access failures.

    Parameters
    ----------
    message:
        Human-readable description of the failure.
    """

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(f"[{self.kind.value}] {message}")
        self.detail = message


class ConflictError(BorrowError):
    """Raised when guard state forbids the requested acquisition."""

    kind = ErrorKind.CONFLICT


class StaleViewError(BorrowError):
    """Raised when a view is used after its storage resized or it was released."""

    kind = ErrorKind.STALE_VIEW


class FixedCapacityError(BorrowError):
    """Raised when a fixed view is asked to change the buffer length."""

    kind = ErrorKind.FIXED_CAPACITY_VIOLATION


class ImmutableAccessError(BorrowError):
    """Raised on a write through an immutable view or against static storage."""

    kind = ErrorKind.IMMUTABLE_ACCESS


class OutOfBoundsError(BorrowError, IndexError):
    """Raised when an index or range falls outside the valid byte range.

    Parameters
    ----------
    message:
        Human-readable description of the failure.
    index:
        The offending index (or range end).
    limit:
        The exclusive upper bound that was exceeded.
    """

    kind = ErrorKind.OUT_OF_BOUNDS

    def __init__(self, message: str, index: int = -1, limit: int = -1) -> None:
        super().__init__(message)
        self.index = index
        self.limit = limit


class InvalidEncodingError(BorrowError, ValueError):
    """Raised when a write would split or produce a malformed code point.

    Parameters
    ----------
    message:
        Human-readable description of the failure.
    offset:
        Byte offset at which the malformed unit starts, when known.
    """

    kind = ErrorKind.INVALID_ENCODING

    def __init__(self, message: str, offset: int | None = None) -> None:
        super().__init__(message)
        self.offset = offset


class DefunctOwnerError(BorrowError):
    """Raised when an Owner is used after it was moved out or destroyed."""

    kind = ErrorKind.DEFUNCT_OWNER


class ContractViolationError(BorrowError):
    """Base class for caller-side contract violations."""


class OutstandingViewsError(ContractViolationError):
    """Raised when an Owner is destroyed while views are still outstanding."""

    kind = ErrorKind.OUTSTANDING_VIEWS


class DoubleReleaseError(ContractViolationError):
    """Raised when a token is released that is not currently held."""

    kind = ErrorKind.DOUBLE_RELEASE


class ConfigError(ValueError):
    """Raised for an invalid ``BufferConfig`` value or configuration file."""


_ERRORS_BY_KIND: dict[ErrorKind, type[BorrowError]] = {
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.STALE_VIEW: StaleViewError,
    ErrorKind.FIXED_CAPACITY_VIOLATION: FixedCapacityError,
    ErrorKind.IMMUTABLE_ACCESS: ImmutableAccessError,
    ErrorKind.OUT_OF_BOUNDS: OutOfBoundsError,
    ErrorKind.INVALID_ENCODING: InvalidEncodingError,
    ErrorKind.OUTSTANDING_VIEWS: OutstandingViewsError,
    ErrorKind.DOUBLE_RELEASE: DoubleReleaseError,
    ErrorKind.DEFUNCT_OWNER: DefunctOwnerError,
}


def error_for(kind: ErrorKind, message: str) -> BorrowError:
    """Build the concrete exception for ``kind``.

    Parameters
    ----------
    kind:
        The error category.
    message:
        Human-readable description of the failure.

    Returns
    -------
    BorrowError
        An instance of the subclass registered for ``kind``.
    """
    return _ERRORS_BY_KIND[kind](message)


__all__ = [
    "ErrorKind",
    "BorrowError",
    "ConflictError",
    "StaleViewError",
    "FixedCapacityError",
    "ImmutableAccessError",
    "OutOfBoundsError",
    "InvalidEncodingError",
    "DefunctOwnerError",
    "ContractViolationError",
    "OutstandingViewsError",
    "DoubleReleaseError",
    "ConfigError",
    "error_for",
]
