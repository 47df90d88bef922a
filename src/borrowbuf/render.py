"""Rich renderings of buffers for debugging sessions.

``code_point_table`` lays out a view character by character, with the
byte offset, code point and raw bytes of each one, which makes it easy
to see why an offset is or is not a character boundary.
``guard_table`` summarizes an Owner's or static block's guard state.

Usage
-----
::

    from borrowbuf import new_owned
    from borrowbuf.render import print_view

    owner = new_owned("Hi你好🦀")
    with owner.borrow_immutable() as view:
        print_view(view)
"""
from __future__ import annotations

from typing import Union

from rich.console import Console
from rich.table import Table

from borrowbuf.buffer.owner import Owner
from borrowbuf.buffer.static import StaticBlock
from borrowbuf.buffer.view import View
from borrowbuf.guard.access import AccessGuard
from borrowbuf.text.encoding import char_spans

GuardHolder = Union[Owner, StaticBlock, AccessGuard]


def code_point_table(view: View) -> Table:
    """Return a table with one row per character of ``view``.

    Raises
    ------
    StaleViewError
        If the view is no longer valid.
    InvalidEncodingError
        If the view's bytes do not decode.
    """
    data = view.read_range(0, len(view))
    table = Table(title=f"{len(data)} bytes, {view.char_count()} chars")
    table.add_column("#", justify="right")
    table.add_column("offset", justify="right")
    table.add_column("char")
    table.add_column("code point")
    table.add_column("bytes")
    for position, (offset, ch) in enumerate(char_spans(data)):
        encoded = ch.encode("utf-8")
        table.add_row(
            str(position),
            str(offset),
            repr(ch),
            f"U+{ord(ch):04X}",
            " ".join(f"{b:02X}" for b in encoded),
        )
    return table


def guard_table(holder: GuardHolder) -> Table:
    """Return a two-column summary of a guard's counters."""
    guard = holder if isinstance(holder, AccessGuard) else holder.guard
    table = Table(show_header=False, box=None)
    table.add_row("[bold]origin[/bold]", guard.origin.name)
    table.add_row("[bold]state[/bold]", guard.state.name)
    table.add_row("shared", str(guard.shared_count))
    table.add_row("exclusive", "yes" if guard.exclusive_held else "no")
    table.add_row("epoch", str(guard.epoch))
    if isinstance(holder, Owner) and not holder.is_defunct:
        table.add_row("length", str(holder.length()))
        table.add_row("capacity", str(holder.capacity()))
    elif isinstance(holder, StaticBlock):
        table.add_row("length", str(holder.length()))
    return table


def print_view(view: View, console: Console | None = None) -> None:
    """Print ``view``'s code point table to ``console`` (stdout by default)."""
    (console or Console()).print(code_point_table(view))


def print_guard(holder: GuardHolder, console: Console | None = None) -> None:
    """Print a guard summary to ``console`` (stdout by default)."""
    (console or Console()).print(guard_table(holder))


__all__ = ["code_point_table", "guard_table", "print_view", "print_guard"]
