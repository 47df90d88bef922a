#!/usr/bin/env python3
"""Example: Text views — borrowbuf

Byte offsets are not character offsets.  This example slices a UTF-8
buffer on character boundaries, shows what happens when a cut would
split a character, and upper-cases a buffer in place.

Usage:
    python examples/02_text_views.py

Requirements:
    pip install borrowbuf
"""
from __future__ import annotations

import borrowbuf
from borrowbuf.render import print_guard, print_view


def main() -> None:
    owner = borrowbuf.new_owned("Hello世界")

    # Step 1: Byte length vs character count
    with owner.borrow_immutable() as view:
        print(f"{len(view)} bytes, {view.char_count()} chars")
        print(f"Char 5: {view.char_at(5)!r}")
        print_view(view)

        # Step 2: Slices must fall on character boundaries
        print(f"Slice [5, 8): {view.slice(5, 8).read_text()!r}")
        try:
            view.slice(0, 6)
        except borrowbuf.InvalidEncodingError as exc:
            print(f"Refused: {exc}")

        print_guard(owner)

    # Step 3: Case conversion rewrites bytes in place; the epoch stays put
    with owner.borrow_mutable_fixed() as view:
        changed = borrowbuf.apply_transform(view, "upper")
    print(f"Changed {changed} chars: {owner.to_str()!r}, epoch={owner.epoch}")

    # Step 4: Length-changing mappings cannot go through a fixed view
    street = borrowbuf.new_owned("straße")
    with street.borrow_mutable_fixed() as view:
        try:
            borrowbuf.apply_transform(view, "upper")
        except borrowbuf.InvalidEncodingError as exc:
            print(f"Refused: {exc}")

    # Step 5: pop_char removes a whole character
    print(f"Popped: {owner.pop_char()!r}, left: {owner.to_str()!r}")


if __name__ == "__main__":
    main()
