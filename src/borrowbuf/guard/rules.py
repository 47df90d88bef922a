"""Conversion rules: the guard state machine and the coercion policy table.

Two tables live here.

``TRANSITIONS`` maps ``(GuardState, GuardEvent)`` to either the next
state or the ``ErrorKind`` that refuses the event.  ``AccessGuard``
consults it before touching its counters, so the table is the single
place the sharing discipline is written down::

    IDLE ──acquire_shared──▶ SHARED(N) ──release last──▶ IDLE
    IDLE ──acquire_exclusive──▶ EXCLUSIVE ──release──▶ IDLE
    EXCLUSIVE ──downgrade──▶ SHARED(1)     (release + acquire, atomic)

Static storage sits permanently in ``SHARED_INFINITE``.

``COERCIONS`` maps ``(AccessSource, ViewMode)`` to the guard action a
conversion needs, e.g. an Owner handing out an immutable view must
acquire a shared token, while re-viewing an immutable view needs none.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Final, Union

from borrowbuf.errors import ErrorKind, error_for


class GuardState(Enum):
    """Aggregate state of an ``AccessGuard``."""

    IDLE = auto()
    SHARED = auto()
    EXCLUSIVE = auto()
    SHARED_INFINITE = auto()


class GuardEvent(Enum):
    """Operations that move a guard between states."""

    ACQUIRE_SHARED = auto()
    ACQUIRE_EXCLUSIVE = auto()
    RELEASE_SHARED = auto()
    RELEASE_EXCLUSIVE = auto()
    DOWNGRADE = auto()
    BUMP_EPOCH = auto()


class ViewMode(Enum):
    """Access mode of a ``View``."""

    IMMUTABLE = auto()
    MUTABLE_FIXED = auto()

    @property
    def can_write(self) -> bool:
        """Return True if bytes may be rewritten through this mode."""
        return self is ViewMode.MUTABLE_FIXED


class AccessSource(Enum):
    """What a conversion request starts from."""

    OWNER = auto()
    MUTABLE_FIXED = auto()
    IMMUTABLE = auto()
    STATIC = auto()


class GuardAction(Enum):
    """Guard operation a permitted coercion performs."""

    ACQUIRE_SHARED = auto()
    ACQUIRE_EXCLUSIVE = auto()
    DOWNGRADE = auto()
    NONE = auto()


Outcome = Union[GuardState, ErrorKind]

TRANSITIONS: Final[dict[tuple[GuardState, GuardEvent], Outcome]] = {
    (GuardState.IDLE, GuardEvent.ACQUIRE_SHARED): GuardState.SHARED,
    (GuardState.IDLE, GuardEvent.ACQUIRE_EXCLUSIVE): GuardState.EXCLUSIVE,
    (GuardState.IDLE, GuardEvent.RELEASE_SHARED): ErrorKind.DOUBLE_RELEASE,
    (GuardState.IDLE, GuardEvent.RELEASE_EXCLUSIVE): ErrorKind.DOUBLE_RELEASE,
    (GuardState.IDLE, GuardEvent.DOWNGRADE): ErrorKind.DOUBLE_RELEASE,
    (GuardState.IDLE, GuardEvent.BUMP_EPOCH): ErrorKind.CONFLICT,
    (GuardState.SHARED, GuardEvent.ACQUIRE_SHARED): GuardState.SHARED,
    (GuardState.SHARED, GuardEvent.ACQUIRE_EXCLUSIVE): ErrorKind.CONFLICT,
    # Lands in IDLE when the last reader leaves; the guard decides from its count.
    (GuardState.SHARED, GuardEvent.RELEASE_SHARED): GuardState.SHARED,
    (GuardState.SHARED, GuardEvent.RELEASE_EXCLUSIVE): ErrorKind.DOUBLE_RELEASE,
    (GuardState.SHARED, GuardEvent.DOWNGRADE): ErrorKind.DOUBLE_RELEASE,
    (GuardState.SHARED, GuardEvent.BUMP_EPOCH): ErrorKind.CONFLICT,
    (GuardState.EXCLUSIVE, GuardEvent.ACQUIRE_SHARED): ErrorKind.CONFLICT,
    (GuardState.EXCLUSIVE, GuardEvent.ACQUIRE_EXCLUSIVE): ErrorKind.CONFLICT,
    (GuardState.EXCLUSIVE, GuardEvent.RELEASE_SHARED): ErrorKind.DOUBLE_RELEASE,
    (GuardState.EXCLUSIVE, GuardEvent.RELEASE_EXCLUSIVE): GuardState.IDLE,
    (GuardState.EXCLUSIVE, GuardEvent.DOWNGRADE): GuardState.SHARED,
    (GuardState.EXCLUSIVE, GuardEvent.BUMP_EPOCH): GuardState.EXCLUSIVE,
    (GuardState.SHARED_INFINITE, GuardEvent.ACQUIRE_SHARED): GuardState.SHARED_INFINITE,
    (GuardState.SHARED_INFINITE, GuardEvent.ACQUIRE_EXCLUSIVE): ErrorKind.IMMUTABLE_ACCESS,
    (GuardState.SHARED_INFINITE, GuardEvent.RELEASE_SHARED): GuardState.SHARED_INFINITE,
    (GuardState.SHARED_INFINITE, GuardEvent.RELEASE_EXCLUSIVE): ErrorKind.DOUBLE_RELEASE,
    (GuardState.SHARED_INFINITE, GuardEvent.DOWNGRADE): ErrorKind.IMMUTABLE_ACCESS,
    (GuardState.SHARED_INFINITE, GuardEvent.BUMP_EPOCH): ErrorKind.IMMUTABLE_ACCESS,
}


def next_state(state: GuardState, event: GuardEvent) -> Outcome:
    """Look up the outcome of ``event`` in ``state``.

    Returns
    -------
    GuardState | ErrorKind
        The state the guard moves to, or the error kind refusing the event.
    """
    return TRANSITIONS[(state, event)]


def require_transition(state: GuardState, event: GuardEvent, context: str = "") -> GuardState:
    """Return the next state for ``event``, raising if the table refuses it.

    Raises
    ------
    BorrowError
        The subclass matching the refusing ``ErrorKind``.
    """
    outcome = TRANSITIONS[(state, event)]
    if isinstance(outcome, ErrorKind):
        where = f" on {context}" if context else ""
        raise error_for(
            outcome,
            f"cannot {event.name.lower()} while guard is {state.name}{where}",
        )
    return outcome


@dataclass(frozen=True, slots=True)
class Coercion:
    """One row of the coercion policy table.

    Parameters
    ----------
    source:
        Where the request starts from.
    target:
        The ``ViewMode`` requested.
    action:
        Guard operation needed when permitted.
    refusal:
        Error kind raised when the coercion is not permitted.
    """

    source: AccessSource
    target: ViewMode
    action: GuardAction
    refusal: ErrorKind | None = None

    @property
    def allowed(self) -> bool:
        """Return True if the coercion is permitted."""
        return self.refusal is None


COERCIONS: Final[dict[tuple[AccessSource, ViewMode], Coercion]] = {
    (AccessSource.OWNER, ViewMode.IMMUTABLE): Coercion(
        AccessSource.OWNER, ViewMode.IMMUTABLE, GuardAction.ACQUIRE_SHARED
    ),
    (AccessSource.OWNER, ViewMode.MUTABLE_FIXED): Coercion(
        AccessSource.OWNER, ViewMode.MUTABLE_FIXED, GuardAction.ACQUIRE_EXCLUSIVE
    ),
    (AccessSource.MUTABLE_FIXED, ViewMode.IMMUTABLE): Coercion(
        AccessSource.MUTABLE_FIXED, ViewMode.IMMUTABLE, GuardAction.DOWNGRADE
    ),
    (AccessSource.MUTABLE_FIXED, ViewMode.MUTABLE_FIXED): Coercion(
        AccessSource.MUTABLE_FIXED,
        ViewMode.MUTABLE_FIXED,
        GuardAction.NONE,
        refusal=ErrorKind.CONFLICT,
    ),
    (AccessSource.IMMUTABLE, ViewMode.IMMUTABLE): Coercion(
        AccessSource.IMMUTABLE, ViewMode.IMMUTABLE, GuardAction.NONE
    ),
    (AccessSource.IMMUTABLE, ViewMode.MUTABLE_FIXED): Coercion(
        AccessSource.IMMUTABLE,
        ViewMode.MUTABLE_FIXED,
        GuardAction.NONE,
        refusal=ErrorKind.IMMUTABLE_ACCESS,
    ),
    (AccessSource.STATIC, ViewMode.IMMUTABLE): Coercion(
        AccessSource.STATIC, ViewMode.IMMUTABLE, GuardAction.NONE
    ),
    (AccessSource.STATIC, ViewMode.MUTABLE_FIXED): Coercion(
        AccessSource.STATIC,
        ViewMode.MUTABLE_FIXED,
        GuardAction.NONE,
        refusal=ErrorKind.IMMUTABLE_ACCESS,
    ),
}


def coercion_for(source: AccessSource, target: ViewMode) -> Coercion:
    """Return the policy row for converting ``source`` into a ``target`` view."""
    return COERCIONS[(source, target)]


def require_coercion(source: AccessSource, target: ViewMode) -> Coercion:
    """Return the policy row, raising its refusal error if not permitted.

    Raises
    ------
    BorrowError
        The subclass matching the row's ``refusal`` kind.
    """
    rule = COERCIONS[(source, target)]
    if rule.refusal is not None:
        raise error_for(
            rule.refusal,
            f"cannot obtain a {target.name} view from {source.name}",
        )
    return rule
