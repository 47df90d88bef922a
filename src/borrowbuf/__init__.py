"""borrowbuf — text buffers with runtime-checked ownership and aliasing guards.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
::

    import borrowbuf

    # Growable owned buffer
    owner = borrowbuf.new_owned("hello")

    # Exclusive, fixed-length view: rewrite bytes in place
    with owner.borrow_mutable_fixed() as view:
        view.write(0, "H")

    # Only the Owner can change length, and only with no views outstanding
    owner.push("!")
    owner.to_str()
    # 'Hello!'

    # Read-only, program-lifetime storage
    world = borrowbuf.from_static("world")
    world.read_range(0, 5)
    # b'world'

    borrowbuf.__version__
    '0.1.0'
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from borrowbuf.errors import (
    BorrowError,
    ConfigError,
    ConflictError,
    ContractViolationError,
    DefunctOwnerError,
    DoubleReleaseError,
    ErrorKind,
    FixedCapacityError,
    ImmutableAccessError,
    InvalidEncodingError,
    OutOfBoundsError,
    OutstandingViewsError,
    StaleViewError,
)
from borrowbuf.guard.origin import OriginKind
from borrowbuf.guard.rules import ViewMode

__version__: str = "0.1.0"

if TYPE_CHECKING:
    from borrowbuf.buffer.owner import Owner
    from borrowbuf.buffer.view import View
    from borrowbuf.config import BufferConfig
    from borrowbuf.text.encoding import BytesLike
    from borrowbuf.text.transforms import CharTransform


def new_owned(data: "BytesLike | str" = b"", **options: Any) -> "Owner":
    """Allocate owned, growable storage and return its ``Owner``.

    Parameters
    ----------
    data:
        Initial content.  Strings are encoded as UTF-8.
    **options:
        ``encoding`` (``"utf-8"`` for a text buffer, ``None`` for raw
        bytes; defaults to the config's encoding) and ``config`` (growth
        and guard settings; defaults to the process default).

    Returns
    -------
    Owner
        The sole owner of the new buffer.

    Raises
    ------
    InvalidEncodingError
        If a text buffer's initial bytes do not decode.
    """
    from borrowbuf.buffer.owner import new_owned as _new_owned

    return _new_owned(data, **options)


def from_static(data: "BytesLike | str", **options: Any) -> "View":
    """Wrap ``data`` as static storage and return an immutable view of it.

    Parameters
    ----------
    data:
        Content of the static block.  Strings are encoded as UTF-8.
    **options:
        ``encoding`` and ``config``, as for ``new_owned``.

    Returns
    -------
    View
        An immutable view covering the whole block.  Static views hold
        no guard token and never go stale.
    """
    from borrowbuf.buffer.static import from_static as _from_static

    return _from_static(data, **options)


def apply_transform(view: "View", transform: "str | CharTransform") -> int:
    """Rewrite every character of a mutable fixed view in place.

    Parameters
    ----------
    view:
        A mutable fixed view over a text buffer.
    transform:
        A registered transform name (``"upper"``, ``"lower"``, ...) or a
        ``str -> str`` callable applied per character.

    Returns
    -------
    int
        Number of characters changed.
    """
    from borrowbuf.text.transforms import apply_transform as _apply_transform

    return _apply_transform(view, transform)


def load_config(path: str | None = None) -> "BufferConfig":
    """Resolve a ``BufferConfig`` from defaults, a YAML file and the environment."""
    from borrowbuf.config import load_config as _load_config

    return _load_config(path)


__all__ = [
    "__version__",
    "new_owned",
    "from_static",
    "apply_transform",
    "load_config",
    "OriginKind",
    "ViewMode",
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
]
