#!/usr/bin/env python3
"""Example: Quickstart — borrowbuf

Minimal working example: create an owned buffer, rewrite it through a
mutable fixed view, grow it through the Owner, and watch an old view go
stale.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install borrowbuf
"""
from __future__ import annotations

import borrowbuf


def main() -> None:
    print(f"borrowbuf version: {borrowbuf.__version__}")

    # Step 1: Allocate owned storage
    owner = borrowbuf.new_owned("hello")
    print(f"Owner: length={owner.length()}, capacity={owner.capacity()}")

    # Step 2: Rewrite a byte in place through a fixed-length view
    view = owner.borrow_mutable_fixed()
    view.write(0, "H")
    print(f"After write: {view.read_range(0, len(view))!r}")

    # Step 3: The Owner cannot grow while the view is outstanding
    try:
        owner.push("!")
    except borrowbuf.ConflictError as exc:
        print(f"Refused: {exc}")
    view.release()

    # Step 4: Grow; capacity doubles and the epoch moves
    owner.push("!")
    print(f"After push: {owner.to_str()!r}, capacity={owner.capacity()}, epoch={owner.epoch}")

    # Step 5: The released view is now stale
    try:
        view.read(0)
    except borrowbuf.StaleViewError as exc:
        print(f"Stale: {exc}")

    # Step 6: Static storage is read-only for the whole process
    world = borrowbuf.from_static("world")
    print(f"Static: {world.read_range(0, 5)!r}")
    try:
        world.write(0, "W")
    except borrowbuf.ImmutableAccessError as exc:
        print(f"Refused: {exc}")


if __name__ == "__main__":
    main()
