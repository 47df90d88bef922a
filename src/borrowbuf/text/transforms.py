"""Registry of in-place text transforms.

A transform maps one character to its replacement, e.g. ``str.upper``.
``apply_transform`` runs it over every character of a mutable fixed
view and rewrites the buffer in place.  A fixed view cannot change the
buffer's length, and a character can only be replaced by a run of the
same encoded length, so ``"ß".upper() == "SS"`` is refused with
``InvalidEncodingError`` before any byte is touched.

Built-in transforms are registered at import time.  Third-party
packages can add their own by declaring entry-points in the
``borrowbuf.transforms`` group::

    [project.entry-points."borrowbuf.transforms"]
    rot13 = "my_package.transforms:rot13"

Then at runtime::

    from borrowbuf.text.transforms import default_registry
    default_registry.load_entrypoints()
"""
from __future__ import annotations

import importlib.metadata
import logging
from collections.abc import Callable
from typing import Final

from borrowbuf.errors import ImmutableAccessError, InvalidEncodingError
from borrowbuf.buffer.view import View
from borrowbuf.text.encoding import char_spans, encode_text

logger = logging.getLogger(__name__)

CharTransform = Callable[[str], str]

ENTRYPOINT_GROUP: Final[str] = "borrowbuf.transforms"


class TransformNotFoundError(KeyError):
    """Raised when a requested transform name is not in the registry."""

    def __init__(self, name: str) -> None:
        self.transform_name = name
        super().__init__(
            f"Transform {name!r} is not registered. "
            "Check that the package is installed and its entry-points are declared."
        )


class TransformAlreadyRegisteredError(ValueError):
    """Raised when attempting to register a name that already exists."""

    def __init__(self, name: str) -> None:
        self.transform_name = name
        super().__init__(
            f"Transform {name!r} is already registered. "
            "Use a unique name or deregister the existing entry first."
        )


class TransformRegistry:
    """Name-keyed registry of per-character transforms."""

    def __init__(self) -> None:
        self._transforms: dict[str, CharTransform] = {}

    def register(self, name: str) -> Callable[[CharTransform], CharTransform]:
        """Return a decorator that registers the decorated function under ``name``.

        Raises
        ------
        TransformAlreadyRegisteredError
            If ``name`` is already in use.
        """

        def decorator(func: CharTransform) -> CharTransform:
            self.register_function(name, func)
            return func

        return decorator

    def register_function(self, name: str, func: CharTransform) -> None:
        """Register ``func`` under ``name`` without decorator syntax.

        Raises
        ------
        TransformAlreadyRegisteredError
            If ``name`` is already in use.
        TypeError
            If ``func`` is not callable.
        """
        if name in self._transforms:
            raise TransformAlreadyRegisteredError(name)
        if not callable(func):
            raise TypeError(f"Cannot register {func!r} under {name!r}: it is not callable.")
        self._transforms[name] = func
        logger.debug("Registered transform %r -> %r", name, func)

    def deregister(self, name: str) -> None:
        """Remove ``name`` from the registry."""
        if name not in self._transforms:
            raise TransformNotFoundError(name)
        del self._transforms[name]
        logger.debug("Deregistered transform %r", name)

    def get(self, name: str) -> CharTransform:
        """Return the transform registered under ``name``."""
        try:
            return self._transforms[name]
        except KeyError:
            raise TransformNotFoundError(name) from None

    def list_transforms(self) -> list[str]:
        """Return registered transform names in alphabetical order."""
        return sorted(self._transforms)

    def __contains__(self, name: object) -> bool:
        return name in self._transforms

    def __len__(self) -> int:
        return len(self._transforms)

    def __repr__(self) -> str:
        return f"TransformRegistry(transforms={self.list_transforms()})"

    def load_entrypoints(self, group: str = ENTRYPOINT_GROUP) -> None:
        """Discover and register transforms declared as package entry-points.

        Names already registered are skipped, so repeated calls are
        idempotent.  Entry-points that fail to import are logged and
        skipped.
        """
        for ep in importlib.metadata.entry_points(group=group):
            if ep.name in self._transforms:
                logger.debug("Entry-point %r already registered; skipping.", ep.name)
                continue
            try:
                func = ep.load()
            except Exception:
                logger.exception(
                    "Failed to load entry-point %r from group %r; skipping.",
                    ep.name,
                    group,
                )
                continue
            try:
                self.register_function(ep.name, func)
            except (TransformAlreadyRegisteredError, TypeError):
                logger.warning("Entry-point %r loaded but could not be registered; skipping.", ep.name)


default_registry = TransformRegistry()


@default_registry.register("upper")
def _upper(ch: str) -> str:
    return ch.upper()


@default_registry.register("lower")
def _lower(ch: str) -> str:
    return ch.lower()


@default_registry.register("swapcase")
def _swapcase(ch: str) -> str:
    return ch.swapcase()


@default_registry.register("ascii_upper")
def _ascii_upper(ch: str) -> str:
    return ch.upper() if ch.isascii() else ch


@default_registry.register("ascii_lower")
def _ascii_lower(ch: str) -> str:
    return ch.lower() if ch.isascii() else ch


def plan_transform(view: View, func: CharTransform) -> list[tuple[int, bytes]]:
    """Compute the in-place rewrites ``func`` needs, without writing.

    Returns
    -------
    list[tuple[int, bytes]]
        ``(offset, replacement)`` pairs relative to the view, one per
        character that changes.

    Raises
    ------
    InvalidEncodingError
        If any replacement's encoded length differs from the character
        it replaces.
    """
    edits: list[tuple[int, bytes]] = []
    for offset, ch in char_spans(view.read_range(0, len(view))):
        replacement = func(ch)
        if replacement == ch:
            continue
        old = ch.encode("utf-8")
        new = encode_text(replacement, offset=offset)
        if len(replacement) != 1 or len(new) != len(old):
            raise InvalidEncodingError(
                f"{ch!r} -> {replacement!r} is not a one-character replacement "
                f"of the same encoded length ({len(old)} -> {len(new)} bytes) at byte {offset}",
                offset=offset,
            )
        edits.append((offset, new))
    return edits


def apply_transform(
    view: View,
    transform: str | CharTransform,
    registry: TransformRegistry | None = None,
) -> int:
    """Rewrite every character of ``view`` in place with ``transform``.

    Either every character is rewritten or none is: the whole plan is
    checked before the first write.  The buffer length never changes,
    so the owner's epoch does not move.

    Parameters
    ----------
    view:
        A mutable fixed view over a text buffer.
    transform:
        A registered transform name, or a callable.
    registry:
        Registry used to resolve names; defaults to ``default_registry``.

    Returns
    -------
    int
        The number of characters changed.
    """
    func = (registry or default_registry).get(transform) if isinstance(transform, str) else transform
    if view.is_valid() and not view.mode.can_write:
        raise ImmutableAccessError(f"cannot transform through {view!r}")
    edits = plan_transform(view, func)
    for offset, replacement in edits:
        view.write_range(offset, replacement)
    return len(edits)


__all__ = [
    "CharTransform",
    "ENTRYPOINT_GROUP",
    "TransformRegistry",
    "TransformNotFoundError",
    "TransformAlreadyRegisteredError",
    "default_registry",
    "plan_transform",
    "apply_transform",
]
