"""Storage origin tags.

Every buffer records where its bytes live.  ``STATIC`` storage is
immutable and lives for the whole process; ``OWNED`` storage belongs to
exactly one ``Owner`` and may be reallocated by it.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum, auto


class OriginKind(Enum):
    """Where a buffer's bytes live."""

    STATIC = auto()
    OWNED = auto()


@dataclass(frozen=True, slots=True)
class StorageOrigin:
    """Snapshot description of a storage block.

    Parameters
    ----------
    kind:
        The ``OriginKind`` of the block.
    length:
        Bytes in use.
    capacity:
        Bytes allocated.  Equal to ``length`` for static blocks.
    digest:
        SHA-256 hex digest of the content for static blocks, ``None``
        for owned blocks whose content changes.
    """

    kind: OriginKind
    length: int
    capacity: int
    digest: str | None = None

    @classmethod
    def static(cls, data: bytes) -> "StorageOrigin":
        """Describe a static block holding ``data``."""
        return cls(
            kind=OriginKind.STATIC,
            length=len(data),
            capacity=len(data),
            digest=hashlib.sha256(data).hexdigest(),
        )

    @classmethod
    def owned(cls, length: int, capacity: int) -> "StorageOrigin":
        """Describe an owned block."""
        return cls(kind=OriginKind.OWNED, length=length, capacity=capacity)

    @property
    def is_static(self) -> bool:
        """Return True for program-lifetime read-only storage."""
        return self.kind is OriginKind.STATIC

    def matches(self, data: bytes) -> bool:
        """Return True if ``data`` has the digest recorded for this block."""
        if self.digest is None:
            return False
        return hashlib.sha256(data).hexdigest() == self.digest
