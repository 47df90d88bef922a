"""Runtime access guard: reader count, exclusive flag, and epoch counter.

The guard is pure bookkeeping.  Acquisition never waits and never retries: an
acquisition that the state machine in ``borrowbuf.guard.rules`` refuses
raises immediately.  Each successful acquisition returns a ``Token``
that must be handed back exactly once.

Usage
-----
::

    guard = AccessGuard()
    token = guard.acquire_exclusive()
    guard.bump_epoch_on_resize(token)
    guard.release(token)
"""
from __future__ import annotations

import contextlib
import itertools
import logging
import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator

from borrowbuf.errors import ConflictError, ContractViolationError, DoubleReleaseError
from borrowbuf.guard.origin import OriginKind
from borrowbuf.guard.rules import GuardEvent, GuardState, require_transition

logger = logging.getLogger(__name__)

_guard_ids: Iterator[int] = itertools.count(1)


class TokenKind(Enum):
    """Kind of access a token proves."""

    SHARED = auto()
    EXCLUSIVE = auto()


@dataclass(frozen=True, slots=True)
class Token:
    """Proof of an acquired access right.

    Parameters
    ----------
    guard_id:
        Identifier of the issuing guard.
    serial:
        Per-guard sequence number, unique for the guard's lifetime.
    kind:
        Shared or exclusive access.
    """

    guard_id: int
    serial: int
    kind: TokenKind

    def __repr__(self) -> str:
        return f"Token({self.kind.name}, guard={self.guard_id}, #{self.serial})"


class AccessGuard:
    """Per-buffer bookkeeping of outstanding shared and exclusive tokens.

    Invariants: ``exclusive_held`` implies ``shared_count == 0``, and
    ``shared_count > 0`` implies not ``exclusive_held``.

    Parameters
    ----------
    origin:
        Storage origin of the guarded buffer.  Static guards sit in
        ``SHARED_INFINITE`` and refuse exclusive access.
    thread_safe:
        Update counters under a lock.  An acquisition that finds the
        lock taken raises ``ConflictError`` instead of waiting.
    strict_contracts:
        Log contract violations at ERROR rather than WARNING.
    """

    __slots__ = (
        "_id",
        "_origin",
        "_shared",
        "_exclusive",
        "_epoch",
        "_serials",
        "_outstanding",
        "_lock",
        "_strict",
    )

    def __init__(
        self,
        origin: OriginKind = OriginKind.OWNED,
        *,
        thread_safe: bool = False,
        strict_contracts: bool = True,
    ) -> None:
        self._id: int = next(_guard_ids)
        self._origin: OriginKind = origin
        self._shared: int = 0
        self._exclusive: Token | None = None
        self._epoch: int = 0
        self._serials: Iterator[int] = itertools.count(1)
        self._outstanding: set[int] = set()
        self._lock: threading.Lock | None = threading.Lock() if thread_safe else None
        self._strict: bool = strict_contracts

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def guard_id(self) -> int:
        return self._id

    @property
    def origin(self) -> OriginKind:
        return self._origin

    @property
    def strict_contracts(self) -> bool:
        return self._strict

    @property
    def shared_count(self) -> int:
        """Number of shared tokens not yet released."""
        return self._shared

    @property
    def exclusive_held(self) -> bool:
        """Return True while an exclusive token is outstanding."""
        return self._exclusive is not None

    @property
    def epoch(self) -> int:
        """Generation counter bumped on every resize of the guarded storage."""
        return self._epoch

    @property
    def state(self) -> GuardState:
        """Aggregate state derived from the counters."""
        if self._origin is OriginKind.STATIC:
            return GuardState.SHARED_INFINITE
        if self._exclusive is not None:
            return GuardState.EXCLUSIVE
        if self._shared > 0:
            return GuardState.SHARED
        return GuardState.IDLE

    @property
    def is_idle(self) -> bool:
        """Return True when no token of either kind is outstanding."""
        return self._shared == 0 and self._exclusive is None

    def holds(self, token: Token) -> bool:
        """Return True if ``token`` was issued here and is still outstanding."""
        return token.guard_id == self._id and token.serial in self._outstanding

    def __repr__(self) -> str:
        return (
            f"AccessGuard(id={self._id}, origin={self._origin.name}, "
            f"state={self.state.name}, shared={self._shared}, epoch={self._epoch})"
        )

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    def acquire_shared(self) -> Token:
        """Acquire a shared token.

        Raises
        ------
        ConflictError
            If an exclusive token is outstanding.
        """
        with self._locked(wait=False):
            self._require(GuardEvent.ACQUIRE_SHARED)
            self._shared += 1
            token = self._issue(TokenKind.SHARED)
        logger.debug("guard %d: acquired %r (shared=%d)", self._id, token, self._shared)
        return token

    def acquire_exclusive(self) -> Token:
        """Acquire the exclusive token.

        Raises
        ------
        ConflictError
            If any shared or exclusive token is outstanding.
        ImmutableAccessError
            If the guarded storage is static.
        """
        with self._locked(wait=False):
            self._require(GuardEvent.ACQUIRE_EXCLUSIVE)
            token = self._issue(TokenKind.EXCLUSIVE)
            self._exclusive = token
        logger.debug("guard %d: acquired %r", self._id, token)
        return token

    def downgrade(self, token: Token) -> Token:
        """Atomically trade the exclusive ``token`` for a new shared token.

        Raises
        ------
        DoubleReleaseError
            If ``token`` is not the outstanding exclusive token.
        ImmutableAccessError
            If the guarded storage is static.
        """
        with self._locked(wait=True):
            self._require(GuardEvent.DOWNGRADE)
            self._check_held(token, TokenKind.EXCLUSIVE)
            self._outstanding.discard(token.serial)
            self._exclusive = None
            self._shared += 1
            shared = self._issue(TokenKind.SHARED)
        logger.debug("guard %d: downgraded %r -> %r", self._id, token, shared)
        return shared

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def release_shared(self, token: Token) -> None:
        """Return a shared token.

        Raises
        ------
        DoubleReleaseError
            If ``token`` is not an outstanding shared token of this guard.
        """
        with self._locked(wait=True):
            self._require(GuardEvent.RELEASE_SHARED)
            self._check_held(token, TokenKind.SHARED)
            self._outstanding.discard(token.serial)
            self._shared -= 1
        logger.debug("guard %d: released %r (shared=%d)", self._id, token, self._shared)

    def release_exclusive(self, token: Token) -> None:
        """Return the exclusive token.

        Raises
        ------
        DoubleReleaseError
            If ``token`` is not the outstanding exclusive token.
        """
        with self._locked(wait=True):
            self._require(GuardEvent.RELEASE_EXCLUSIVE)
            self._check_held(token, TokenKind.EXCLUSIVE)
            self._outstanding.discard(token.serial)
            self._exclusive = None
        logger.debug("guard %d: released %r", self._id, token)

    def release(self, token: Token) -> None:
        """Return ``token``, dispatching on its kind."""
        if token.kind is TokenKind.SHARED:
            self.release_shared(token)
        else:
            self.release_exclusive(token)

    # ------------------------------------------------------------------
    # Epoch
    # ------------------------------------------------------------------

    def bump_epoch_on_resize(self, token: Token) -> int:
        """Advance the epoch, invalidating every view created before now.

        The caller must hold the exclusive token; growth and shrink are
        always exclusive-access operations.

        Returns
        -------
        int
            The new epoch.

        Raises
        ------
        ConflictError
            If ``token`` is not the outstanding exclusive token.
        ImmutableAccessError
            If the guarded storage is static.
        """
        with self._locked(wait=True):
            self._require(GuardEvent.BUMP_EPOCH)
            if self._exclusive != token:
                raise ConflictError(
                    f"guard {self._id}: epoch bump requires the outstanding exclusive token"
                )
            self._epoch += 1
            epoch = self._epoch
        logger.debug("guard %d: epoch -> %d", self._id, epoch)
        return epoch

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def _locked(self, *, wait: bool) -> Iterator[None]:
        # Only acquisitions fail fast; token holders wait their turn.
        if self._lock is None:
            yield
            return
        if not self._lock.acquire(blocking=wait):
            raise ConflictError(f"guard {self._id}: concurrent access in progress")
        try:
            yield
        finally:
            self._lock.release()

    def _require(self, event: GuardEvent) -> GuardState:
        try:
            return require_transition(self.state, event, f"guard {self._id}")
        except ContractViolationError as exc:
            report_contract_violation(exc.detail, strict=self._strict)
            raise

    def _issue(self, kind: TokenKind) -> Token:
        token = Token(guard_id=self._id, serial=next(self._serials), kind=kind)
        self._outstanding.add(token.serial)
        return token

    def _check_held(self, token: Token, kind: TokenKind) -> None:
        if token.kind is kind and self.holds(token):
            return
        message = f"guard {self._id}: {token!r} is not an outstanding {kind.name.lower()} token"
        report_contract_violation(message, strict=self._strict)
        raise DoubleReleaseError(message)


def report_contract_violation(message: str, *, strict: bool) -> None:
    """Log a caller-side contract violation before it is raised."""
    if strict:
        logger.error("contract violation: %s", message)
    else:
        logger.warning("contract violation: %s", message)
