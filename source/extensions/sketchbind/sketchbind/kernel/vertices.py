"""
Vertex store — canonical 2D positions keyed by vertex id.

The solver only reads initial positions from here and, after a successful
solve, writes the solved ones back.  Everything else (manual moves, deletes)
belongs to the interaction layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from .ids import IdAllocator


@dataclass
class Vertex:
    """A sketch vertex."""
    vid: int
    x: float
    y: float

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)

    def dist_sq(self, other: "Vertex") -> float:
        dx = other.x - self.x
        dy = other.y - self.y
        return dx * dx + dy * dy


class VertexStore:
    """
    Owns every vertex of a sketch.

    Usage::

        vertices = VertexStore()
        a = vertices.add(0.0, 0.0)
        b = vertices.add(3.0, 4.0)
        vertices.set_position(b, 6.0, 8.0)
        x, y = vertices.position(b)
    """

    def __init__(self, ids: Optional[IdAllocator] = None):
        self._vertices: Dict[int, Vertex] = {}
        self._ids = ids if ids is not None else IdAllocator()

    # -- Queries ---------------------------------------------------------------

    @property
    def ids(self) -> List[int]:
        return list(self._vertices.keys())

    def get(self, vid: int) -> Vertex:
        """Return the vertex; raises ``KeyError`` for unknown ids."""
        return self._vertices[vid]

    def position(self, vid: int) -> Tuple[float, float]:
        return self._vertices[vid].position

    def __contains__(self, vid: int) -> bool:
        return vid in self._vertices

    def __len__(self) -> int:
        return len(self._vertices)

    def __iter__(self) -> Iterator[Vertex]:
        return iter(list(self._vertices.values()))

    # -- Mutations -------------------------------------------------------------

    def add(self, x: float, y: float) -> int:
        """Create a vertex at ``(x, y)`` and return its new id."""
        vid = self._ids.next_id()
        self._vertices[vid] = Vertex(vid, float(x), float(y))
        return vid

    def set_position(self, vid: int, x: float, y: float):
        v = self._vertices[vid]
        v.x = float(x)
        v.y = float(y)

    def remove(self, vid: int) -> Optional[Vertex]:
        """Remove and return a vertex, or ``None`` if it does not exist."""
        return self._vertices.pop(vid, None)

    # -- Snapshots -------------------------------------------------------------

    def snapshot(self) -> Dict[int, Tuple[float, float]]:
        """Positions of every vertex, for :meth:`restore`."""
        return {vid: v.position for vid, v in self._vertices.items()}

    def restore(self, snapshot: Dict[int, Tuple[float, float]]):
        """Put back positions taken by :meth:`snapshot` (vertices still present)."""
        for vid, (x, y) in snapshot.items():
            v = self._vertices.get(vid)
            if v is not None:
                v.x = x
                v.y = y

    def __repr__(self) -> str:
        return f"VertexStore(vertices={len(self._vertices)})"
