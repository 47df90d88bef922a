"""Unit tests for borrowbuf.buffer.view — reads, in-place writes, slicing and staleness."""
from __future__ import annotations

import logging

import pytest

from borrowbuf.buffer.owner import Owner, new_owned
from borrowbuf.buffer.static import from_static
from borrowbuf.config import BufferConfig
from borrowbuf.errors import (
    ConflictError,
    DoubleReleaseError,
    FixedCapacityError,
    ImmutableAccessError,
    InvalidEncodingError,
    OutOfBoundsError,
    StaleViewError,
)
from borrowbuf.guard.origin import OriginKind
from borrowbuf.guard.rules import ViewMode


@pytest.fixture()
def cjk() -> Owner:
    """An owned text buffer with multi-byte characters."""
    return new_owned("Hello世界")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestReads:
    def test_read_single_byte(self, hello: Owner) -> None:
        with hello.borrow_immutable() as view:
            assert view.read(0) == ord("h")
            assert view.read(4) == ord("o")

    @pytest.mark.parametrize("index", [-1, 5, 100])
    def test_read_out_of_bounds(self, hello: Owner, index: int) -> None:
        with hello.borrow_immutable() as view:
            with pytest.raises(OutOfBoundsError) as exc_info:
                view.read(index)
        assert exc_info.value.limit == 5

    def test_read_range_up_to_length(self, hello: Owner) -> None:
        with hello.borrow_immutable() as view:
            assert view.read_range(0, len(view)) == b"hello"
            assert view.read_range(5, 5) == b""

    @pytest.mark.parametrize(("start", "end"), [(0, 6), (3, 2), (-1, 2)])
    def test_read_range_out_of_bounds(self, hello: Owner, start: int, end: int) -> None:
        with hello.borrow_immutable() as view:
            with pytest.raises(OutOfBoundsError):
                view.read_range(start, end)

    def test_bytes_protocol(self, hello: Owner) -> None:
        with hello.borrow_immutable() as view:
            assert bytes(view) == b"hello"

    def test_sub_range_view_is_relative(self, hello: Owner) -> None:
        with hello.borrow_immutable(1, 4) as view:
            assert len(view) == 3
            assert view.byte_range == (1, 4)
            assert view.read(0) == ord("e")
            assert bytes(view) == b"ell"

    def test_view_metadata(self, hello: Owner) -> None:
        with hello.borrow_immutable() as view:
            assert view.mode is ViewMode.IMMUTABLE
            assert view.origin_kind() is OriginKind.OWNED
            assert view.encoding == "utf-8"
            assert view.created_epoch == hello.epoch
            assert view.token is not None
            assert "valid" in repr(view)


# ---------------------------------------------------------------------------
# Text reads
# ---------------------------------------------------------------------------


class TestTextReads:
    def test_read_text(self, cjk: Owner) -> None:
        with cjk.borrow_immutable() as view:
            assert view.read_text() == "Hello世界"
            assert view.read_text(5, 8) == "世"

    def test_read_text_refuses_split_character(self, cjk: Owner) -> None:
        with cjk.borrow_immutable() as view:
            with pytest.raises(InvalidEncodingError) as exc_info:
                view.read_text(0, 6)
        assert exc_info.value.offset == 6

    def test_chars(self, cjk: Owner) -> None:
        with cjk.borrow_immutable() as view:
            assert view.chars() == ["H", "e", "l", "l", "o", "世", "界"]

    def test_char_count_differs_from_length(self, cjk: Owner) -> None:
        with cjk.borrow_immutable() as view:
            assert len(view) == 11
            assert view.char_count() == 7

    @pytest.mark.parametrize(
        ("index", "expected"), [(0, "H"), (5, "世"), (6, "界"), (7, None), (-1, None)]
    )
    def test_char_at(self, cjk: Owner, index: int, expected: str | None) -> None:
        with cjk.borrow_immutable() as view:
            assert view.char_at(index) == expected


# ---------------------------------------------------------------------------
# In-place writes
# ---------------------------------------------------------------------------


class TestWrites:
    @pytest.mark.parametrize("value", [ord("H"), "H", b"H"])
    def test_write_single_byte(self, hello: Owner, value: int | str | bytes) -> None:
        with hello.borrow_mutable_fixed() as view:
            view.write(0, value)
            assert view.read(0) == ord("H")
        assert hello.to_str() == "Hello"

    def test_write_does_not_bump_epoch(self, hello: Owner) -> None:
        with hello.borrow_mutable_fixed() as view:
            view.write(0, "H")
            assert view.is_valid()
        assert hello.epoch == 0

    def test_immutable_view_refuses_write(self, hello: Owner) -> None:
        with hello.borrow_immutable() as view:
            with pytest.raises(ImmutableAccessError):
                view.write(0, "H")
        assert hello.to_str() == "hello"

    def test_write_out_of_bounds(self, hello: Owner) -> None:
        with hello.borrow_mutable_fixed() as view:
            with pytest.raises(OutOfBoundsError):
                view.write(5, "!")

    def test_write_multi_byte_string_refused(self, hello: Owner) -> None:
        with hello.borrow_mutable_fixed() as view:
            with pytest.raises(InvalidEncodingError):
                view.write(0, "世")

    @pytest.mark.parametrize("value", [-1, 256])
    def test_write_out_of_range_int(self, hello: Owner, value: int) -> None:
        with hello.borrow_mutable_fixed() as view:
            with pytest.raises(ValueError):
                view.write(0, value)

    def test_write_inside_multi_byte_character_refused(self, cjk: Owner) -> None:
        with cjk.borrow_mutable_fixed() as view:
            with pytest.raises(InvalidEncodingError) as exc_info:
                view.write(6, "a")
        assert exc_info.value.offset == 6
        assert cjk.to_str() == "Hello世界"

    def test_write_non_ascii_byte_into_text_refused(self, hello: Owner) -> None:
        with hello.borrow_mutable_fixed() as view:
            with pytest.raises(InvalidEncodingError):
                view.write(0, 0xE4)

    def test_raw_buffer_accepts_any_byte(self, raw_config: BufferConfig) -> None:
        owner = new_owned(b"\x00\x01\x02", config=raw_config)
        with owner.borrow_mutable_fixed() as view:
            view.write(1, 0xFF)
        assert owner.to_bytes() == b"\x00\xff\x02"

    def test_replace_range_same_length(self, cjk: Owner) -> None:
        with cjk.borrow_mutable_fixed() as view:
            view.replace_range(5, 8, "界")
        assert cjk.to_str() == "Hello界界"
        assert cjk.epoch == 0

    def test_replace_range_length_mismatch(self, hello: Owner) -> None:
        with hello.borrow_mutable_fixed() as view:
            with pytest.raises(FixedCapacityError):
                view.replace_range(0, 1, "HH")

    def test_replace_range_split_character(self, cjk: Owner) -> None:
        with cjk.borrow_mutable_fixed() as view:
            with pytest.raises(InvalidEncodingError):
                view.replace_range(5, 7, "ab")

    def test_replace_range_malformed_payload(self, hello: Owner) -> None:
        with hello.borrow_mutable_fixed() as view:
            with pytest.raises(InvalidEncodingError):
                view.replace_range(0, 1, b"\xff")

    @pytest.mark.parametrize(("text", "offset"), [("\ud800", 1), ("a\udfff", 2)])
    def test_write_range_lone_surrogate(self, hello: Owner, text: str, offset: int) -> None:
        with hello.borrow_mutable_fixed(1, 5) as view:
            with pytest.raises(InvalidEncodingError) as exc_info:
                view.write_range(0, text)
        assert exc_info.value.offset == offset
        assert hello.to_str() == "hello"

    def test_replace_range_lone_surrogate(self, hello: Owner) -> None:
        with hello.borrow_mutable_fixed() as view:
            with pytest.raises(InvalidEncodingError):
                view.replace_range(0, 3, "\ud800")
        assert hello.to_str() == "hello"

    def test_write_lone_surrogate(self, hello: Owner) -> None:
        with hello.borrow_mutable_fixed() as view:
            with pytest.raises(InvalidEncodingError) as exc_info:
                view.write(3, "\ud800")
        assert exc_info.value.offset == 3
        assert hello.to_str() == "hello"


    def test_write_range(self, hello: Owner) -> None:
        with hello.borrow_mutable_fixed() as view:
            view.write_range(0, "HE")
        assert hello.to_str() == "HEllo"

    def test_write_range_past_end(self, hello: Owner) -> None:
        with hello.borrow_mutable_fixed() as view:
            with pytest.raises(OutOfBoundsError):
                view.write_range(4, "!!")

    def test_sub_range_write_is_relative(self, hello: Owner) -> None:
        with hello.borrow_mutable_fixed(2, 5) as view:
            view.write(0, "L")
        assert hello.to_str() == "heLlo"


# ---------------------------------------------------------------------------
# Length-changing operations through a view
# ---------------------------------------------------------------------------


RESIZES = [
    ("push", ("!",)),
    ("pop", ()),
    ("insert_at", (0, "x")),
    ("remove_range", (0, 1)),
]


class TestResizeRefused:
    @pytest.mark.parametrize(("name", "args"), RESIZES)
    def test_mutable_fixed_view(self, hello: Owner, name: str, args: tuple) -> None:
        with hello.borrow_mutable_fixed() as view:
            with pytest.raises(FixedCapacityError):
                getattr(view, name)(*args)
            assert len(view) == 5
        assert hello.to_str() == "hello"

    @pytest.mark.parametrize(("name", "args"), RESIZES)
    def test_immutable_view(self, hello: Owner, name: str, args: tuple) -> None:
        with hello.borrow_immutable() as view:
            with pytest.raises(ImmutableAccessError):
                getattr(view, name)(*args)

    @pytest.mark.parametrize(("name", "args"), RESIZES)
    def test_stale_view(self, hello: Owner, name: str, args: tuple) -> None:
        view = hello.borrow_mutable_fixed()
        view.release()
        with pytest.raises(StaleViewError):
            getattr(view, name)(*args)


# ---------------------------------------------------------------------------
# Slicing
# ---------------------------------------------------------------------------


class TestSlice:
    def test_slice_reads_sub_range(self, cjk: Owner) -> None:
        with cjk.borrow_immutable() as view:
            piece = view.slice(5, 11)
            assert piece.read_text() == "世界"
            assert piece.byte_range == (5, 11)
            assert piece.mode is ViewMode.IMMUTABLE

    def test_slice_of_slice(self, hello: Owner) -> None:
        with hello.borrow_immutable() as view:
            inner = view.slice(1, 4).slice(1, 2)
            assert bytes(inner) == b"l"

    def test_slice_takes_no_token(self, hello: Owner) -> None:
        with hello.borrow_immutable() as view:
            view.slice(0, 2)
            assert hello.guard.shared_count == 1

    def test_slice_goes_stale_with_parent(self, hello: Owner) -> None:
        view = hello.borrow_immutable()
        piece = view.slice(0, 2)
        view.release()
        assert not piece.is_valid()
        with pytest.raises(StaleViewError):
            piece.read(0)

    def test_releasing_slice_keeps_parent_borrow(self, hello: Owner) -> None:
        with hello.borrow_immutable() as view:
            view.slice(0, 2).release()
            assert view.is_valid()
            assert hello.guard.shared_count == 1

    def test_slice_splitting_character_refused(self, cjk: Owner) -> None:
        with cjk.borrow_immutable() as view:
            with pytest.raises(InvalidEncodingError):
                view.slice(0, 6)

    def test_slice_out_of_bounds(self, hello: Owner) -> None:
        with hello.borrow_immutable() as view:
            with pytest.raises(OutOfBoundsError):
                view.slice(2, 6)

    def test_mutable_view_cannot_slice(self, hello: Owner) -> None:
        with hello.borrow_mutable_fixed() as view:
            with pytest.raises(ConflictError):
                view.slice(0, 2)


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


class TestToImmutable:
    def test_immutable_view_is_returned_unchanged(self, hello: Owner) -> None:
        with hello.borrow_immutable() as view:
            assert view.to_immutable() is view
            assert view.to_immutable().to_immutable() is view

    def test_mutable_view_downgrades(self, hello: Owner) -> None:
        mutable = hello.borrow_mutable_fixed()
        mutable.write(0, "H")
        immutable = mutable.to_immutable()
        assert immutable.mode is ViewMode.IMMUTABLE
        assert bytes(immutable) == b"Hello"
        assert not hello.guard.exclusive_held
        assert hello.guard.shared_count == 1
        immutable.release()
        assert hello.guard.is_idle

    def test_downgraded_view_is_idempotent(self, hello: Owner) -> None:
        immutable = hello.borrow_mutable_fixed().to_immutable()
        assert immutable.to_immutable() is immutable
        immutable.release()

    def test_mutable_view_is_consumed(self, hello: Owner) -> None:
        mutable = hello.borrow_mutable_fixed()
        immutable = mutable.to_immutable()
        with pytest.raises(StaleViewError):
            mutable.write(0, "H")
        immutable.release()

    def test_readers_may_join_after_downgrade(self, hello: Owner) -> None:
        immutable = hello.borrow_mutable_fixed().to_immutable()
        with hello.borrow_immutable() as other:
            assert bytes(other) == bytes(immutable)
        immutable.release()

    def test_static_view_is_returned_unchanged(self) -> None:
        view = from_static("world")
        assert view.to_immutable() is view


# ---------------------------------------------------------------------------
# Release and staleness
# ---------------------------------------------------------------------------


class TestRelease:
    def test_release_returns_token(self, hello: Owner) -> None:
        view = hello.borrow_immutable()
        assert hello.guard.shared_count == 1
        view.release()
        assert hello.guard.is_idle

    def test_context_manager_releases(self, hello: Owner) -> None:
        with hello.borrow_mutable_fixed():
            assert hello.guard.exclusive_held
        assert hello.guard.is_idle

    def test_context_manager_tolerates_explicit_release(self, hello: Owner) -> None:
        with hello.borrow_immutable() as view:
            view.release()
        assert hello.guard.is_idle

    def test_double_release(self, hello: Owner, caplog: pytest.LogCaptureFixture) -> None:
        view = hello.borrow_immutable()
        view.release()
        with caplog.at_level(logging.WARNING, logger="borrowbuf"):
            with pytest.raises(DoubleReleaseError):
                view.release()
        assert "already released" in caplog.text

    def test_released_view_is_stale(self, hello: Owner) -> None:
        view = hello.borrow_immutable()
        view.release()
        assert not view.is_valid()
        assert "stale" in repr(view)
        with pytest.raises(StaleViewError, match="released"):
            view.read(0)

    def test_resize_makes_old_view_stale_by_epoch(self, hello: Owner) -> None:
        view = hello.borrow_immutable()
        view.release()
        hello.push("!")
        with pytest.raises(StaleViewError, match="epoch"):
            view.read_range(0, 1)

    def test_fresh_view_after_resize_is_valid(self, hello: Owner) -> None:
        hello.push("!")
        with hello.borrow_immutable() as view:
            assert view.created_epoch == 1
            assert bytes(view) == b"hello!"

    def test_dropped_view_returns_its_token(self, hello: Owner) -> None:
        hello.borrow_mutable_fixed()
        assert hello.guard.is_idle
