"""Guard module.

Exports the storage origin tags, the ``AccessGuard`` bookkeeping class,
and the conversion rules that drive it.
"""
from __future__ import annotations

from borrowbuf.guard.access import AccessGuard, Token, TokenKind
from borrowbuf.guard.origin import OriginKind, StorageOrigin
from borrowbuf.guard.rules import (
    COERCIONS,
    TRANSITIONS,
    AccessSource,
    Coercion,
    GuardAction,
    GuardEvent,
    GuardState,
    ViewMode,
    coercion_for,
    next_state,
    require_coercion,
    require_transition,
)

__all__ = [
    "AccessGuard",
    "Token",
    "TokenKind",
    "OriginKind",
    "StorageOrigin",
    "COERCIONS",
    "TRANSITIONS",
    "AccessSource",
    "Coercion",
    "GuardAction",
    "GuardEvent",
    "GuardState",
    "ViewMode",
    "coercion_for",
    "next_state",
    "require_coercion",
    "require_transition",
]
