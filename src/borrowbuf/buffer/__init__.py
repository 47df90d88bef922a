"""Buffer module.

Exports the ``Owner`` and ``View`` handles, static blocks, and the
``new_owned`` / ``from_static`` constructors.
"""
from __future__ import annotations

from borrowbuf.buffer.owner import OwnedStorage, Owner, new_owned
from borrowbuf.buffer.static import StaticBlock, from_static, static_block
from borrowbuf.buffer.view import BufferTarget, Lease, View

__all__ = [
    "Owner",
    "OwnedStorage",
    "new_owned",
    "StaticBlock",
    "from_static",
    "static_block",
    "View",
    "Lease",
    "BufferTarget",
]
