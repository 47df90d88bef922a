"""Unit tests for borrowbuf.guard.rules — the transition and coercion tables."""
from __future__ import annotations

import pytest

from borrowbuf.errors import (
    BorrowError,
    ConflictError,
    DoubleReleaseError,
    ErrorKind,
    ImmutableAccessError,
)
from borrowbuf.guard.rules import (
    COERCIONS,
    TRANSITIONS,
    AccessSource,
    GuardAction,
    GuardEvent,
    GuardState,
    ViewMode,
    coercion_for,
    next_state,
    require_coercion,
    require_transition,
)


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------


class TestTransitionTable:
    def test_table_is_total(self) -> None:
        for state in GuardState:
            for event in GuardEvent:
                assert (state, event) in TRANSITIONS

    @pytest.mark.parametrize(
        ("state", "event", "expected"),
        [
            (GuardState.IDLE, GuardEvent.ACQUIRE_SHARED, GuardState.SHARED),
            (GuardState.IDLE, GuardEvent.ACQUIRE_EXCLUSIVE, GuardState.EXCLUSIVE),
            (GuardState.SHARED, GuardEvent.ACQUIRE_SHARED, GuardState.SHARED),
            (GuardState.EXCLUSIVE, GuardEvent.RELEASE_EXCLUSIVE, GuardState.IDLE),
            (GuardState.EXCLUSIVE, GuardEvent.DOWNGRADE, GuardState.SHARED),
            (GuardState.EXCLUSIVE, GuardEvent.BUMP_EPOCH, GuardState.EXCLUSIVE),
            (GuardState.SHARED_INFINITE, GuardEvent.ACQUIRE_SHARED, GuardState.SHARED_INFINITE),
        ],
    )
    def test_permitted_transitions(
        self, state: GuardState, event: GuardEvent, expected: GuardState
    ) -> None:
        assert next_state(state, event) is expected
        assert require_transition(state, event) is expected

    @pytest.mark.parametrize(
        ("state", "event", "kind"),
        [
            (GuardState.SHARED, GuardEvent.ACQUIRE_EXCLUSIVE, ErrorKind.CONFLICT),
            (GuardState.EXCLUSIVE, GuardEvent.ACQUIRE_SHARED, ErrorKind.CONFLICT),
            (GuardState.EXCLUSIVE, GuardEvent.ACQUIRE_EXCLUSIVE, ErrorKind.CONFLICT),
            (GuardState.IDLE, GuardEvent.RELEASE_SHARED, ErrorKind.DOUBLE_RELEASE),
            (GuardState.IDLE, GuardEvent.RELEASE_EXCLUSIVE, ErrorKind.DOUBLE_RELEASE),
            (GuardState.IDLE, GuardEvent.BUMP_EPOCH, ErrorKind.CONFLICT),
            (GuardState.SHARED_INFINITE, GuardEvent.ACQUIRE_EXCLUSIVE, ErrorKind.IMMUTABLE_ACCESS),
            (GuardState.SHARED_INFINITE, GuardEvent.BUMP_EPOCH, ErrorKind.IMMUTABLE_ACCESS),
        ],
    )
    def test_refused_transitions(
        self, state: GuardState, event: GuardEvent, kind: ErrorKind
    ) -> None:
        assert next_state(state, event) is kind
        with pytest.raises(BorrowError) as exc_info:
            require_transition(state, event)
        assert exc_info.value.kind is kind

    def test_refusal_message_names_context(self) -> None:
        with pytest.raises(ConflictError, match="on guard 7"):
            require_transition(GuardState.SHARED, GuardEvent.ACQUIRE_EXCLUSIVE, "guard 7")

    def test_refusal_message_names_event_and_state(self) -> None:
        with pytest.raises(DoubleReleaseError) as exc_info:
            require_transition(GuardState.IDLE, GuardEvent.RELEASE_SHARED)
        assert "release_shared" in str(exc_info.value)
        assert "IDLE" in str(exc_info.value)


# ---------------------------------------------------------------------------
# ViewMode
# ---------------------------------------------------------------------------


class TestViewMode:
    def test_only_mutable_fixed_can_write(self) -> None:
        assert ViewMode.MUTABLE_FIXED.can_write
        assert not ViewMode.IMMUTABLE.can_write


# ---------------------------------------------------------------------------
# Coercion table
# ---------------------------------------------------------------------------


class TestCoercionTable:
    def test_table_is_total(self) -> None:
        for source in AccessSource:
            for target in ViewMode:
                assert (source, target) in COERCIONS

    @pytest.mark.parametrize(
        ("source", "target", "action"),
        [
            (AccessSource.OWNER, ViewMode.IMMUTABLE, GuardAction.ACQUIRE_SHARED),
            (AccessSource.OWNER, ViewMode.MUTABLE_FIXED, GuardAction.ACQUIRE_EXCLUSIVE),
            (AccessSource.MUTABLE_FIXED, ViewMode.IMMUTABLE, GuardAction.DOWNGRADE),
            (AccessSource.IMMUTABLE, ViewMode.IMMUTABLE, GuardAction.NONE),
            (AccessSource.STATIC, ViewMode.IMMUTABLE, GuardAction.NONE),
        ],
    )
    def test_permitted_coercions(
        self, source: AccessSource, target: ViewMode, action: GuardAction
    ) -> None:
        rule = coercion_for(source, target)
        assert rule.allowed
        assert rule.action is action
        assert require_coercion(source, target) is rule

    @pytest.mark.parametrize(
        ("source", "error"),
        [
            (AccessSource.MUTABLE_FIXED, ConflictError),
            (AccessSource.IMMUTABLE, ImmutableAccessError),
            (AccessSource.STATIC, ImmutableAccessError),
        ],
    )
    def test_refused_coercions_to_mutable(
        self, source: AccessSource, error: type[BorrowError]
    ) -> None:
        rule = coercion_for(source, ViewMode.MUTABLE_FIXED)
        assert not rule.allowed
        with pytest.raises(error):
            require_coercion(source, ViewMode.MUTABLE_FIXED)

    def test_rows_record_their_key(self) -> None:
        for (source, target), rule in COERCIONS.items():
            assert rule.source is source
            assert rule.target is target
