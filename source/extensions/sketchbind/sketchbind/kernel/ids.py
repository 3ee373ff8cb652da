"""
Identifier allocation for vertices and constraints.

Each store owns its own :class:`IdAllocator`, so two sketches (or two tests)
never share a counter and ids are deterministic from a fresh store.
"""

from __future__ import annotations


class IdAllocator:
    """Monotonic integer id source.  Ids are never handed out twice."""

    def __init__(self, start: int = 0):
        self._next: int = start

    def next_id(self) -> int:
        nid = self._next
        self._next += 1
        return nid

    def peek(self) -> int:
        """The id the next call to :meth:`next_id` will return."""
        return self._next

    def reset(self, start: int = 0):
        self._next = start

    def __repr__(self) -> str:
        return f"IdAllocator(next={self._next})"
