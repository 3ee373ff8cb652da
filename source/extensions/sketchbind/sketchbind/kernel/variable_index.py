"""
Variable index — maps constrained vertices onto a flat parameter vector.

Only vertices named by at least one constraint become variables; each gets
two consecutive slots ``[x, y]``.  The index is rebuilt for every solve and
the same instance serves every residual evaluation and the final writeback
of that solve.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

import numpy as np

from .constraints import Constraint
from .errors import MissingVertex
from .vertices import VertexStore


class VariableIndex:
    """
    Bijective mapping ``(vertex id, axis) -> slot`` for one solve.

    Vertices are laid out in order of first appearance while walking the
    constraints in store order, so slot ``2*k`` is the x of the k-th vertex
    and slot ``2*k + 1`` its y.
    """

    def __init__(self, vertex_ids: List[int], x0: np.ndarray):
        self._vertex_ids = list(vertex_ids)
        self._slots: Dict[int, int] = {vid: 2 * k for k, vid in enumerate(self._vertex_ids)}
        self._x0 = x0

    @classmethod
    def build(cls, constraints: Iterable[Constraint], vertices: VertexStore) -> "VariableIndex":
        """
        Collect every vertex referenced by *constraints* and seed the flat
        vector with their current positions.

        Raises:
            MissingVertex: if a constraint names a vertex that is not in
                *vertices*.  Raised before any slot is allocated.
        """
        ordered: List[int] = []
        seen = set()
        for c in constraints:
            for vid in c.vertex_ids:
                if vid in seen:
                    continue
                if vid not in vertices:
                    raise MissingVertex(vid, c.cid)
                seen.add(vid)
                ordered.append(vid)

        x0 = np.empty(2 * len(ordered), dtype=np.float64)
        for k, vid in enumerate(ordered):
            x0[2 * k], x0[2 * k + 1] = vertices.position(vid)
        return cls(ordered, x0)

    # -- Queries ---------------------------------------------------------------

    @property
    def x0(self) -> np.ndarray:
        """Initial flat vector (a copy, safe to mutate)."""
        return self._x0.copy()

    @property
    def vertex_ids(self) -> List[int]:
        return list(self._vertex_ids)

    @property
    def size(self) -> int:
        """Number of scalar variables."""
        return len(self._x0)

    def slot(self, vid: int) -> int:
        """First slot (the x coordinate) of vertex *vid*."""
        return self._slots[vid]

    def slots(self, vid: int) -> Tuple[int, int]:
        i = self._slots[vid]
        return (i, i + 1)

    def point(self, vec: np.ndarray, vid: int) -> Tuple[float, float]:
        """Read vertex *vid*'s coordinates out of a flat vector."""
        i = self._slots[vid]
        return (float(vec[i]), float(vec[i + 1]))

    def __contains__(self, vid: int) -> bool:
        return vid in self._slots

    def __len__(self) -> int:
        return len(self._vertex_ids)

    def __repr__(self) -> str:
        return f"VariableIndex(vertices={len(self._vertex_ids)}, size={self.size})"
