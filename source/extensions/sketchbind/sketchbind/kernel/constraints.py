"""
Constraint definitions and the constraint store.

A constraint is an immutable record: a type tag, the vertex ids it relates
and the constants captured when it was created (target point, target
coordinate or target squared distance).  Residual formulas live in
:mod:`.residuals`; this module only describes and stores constraints.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import MissingVertex
from .ids import IdAllocator
from .vertices import VertexStore


class ConstraintType(Enum):
    FIXED = auto()
    FIXED_X = auto()
    FIXED_Y = auto()
    VERTICAL = auto()
    HORIZONTAL = auto()
    PARALLEL = auto()         # segments (a, b) and (c, d)
    SAME_POS = auto()
    DISTANCE = auto()         # value is the squared distance

    @property
    def arity(self) -> int:
        return _SHAPE[self][0]

    @property
    def equation_count(self) -> int:
        return _SHAPE[self][1]


# (vertex arity, scalar equation count, captured constants) per type
_SHAPE: Dict[ConstraintType, Tuple[int, int, int]] = {
    ConstraintType.FIXED: (1, 2, 2),
    ConstraintType.FIXED_X: (1, 1, 1),
    ConstraintType.FIXED_Y: (1, 1, 1),
    ConstraintType.VERTICAL: (2, 1, 0),
    ConstraintType.HORIZONTAL: (2, 1, 0),
    ConstraintType.PARALLEL: (4, 1, 0),
    ConstraintType.SAME_POS: (2, 2, 0),
    ConstraintType.DISTANCE: (2, 1, 1),
}


@dataclass(frozen=True)
class Constraint:
    """A single geometric constraint between sketch vertices."""
    cid: int
    ctype: ConstraintType
    vertex_ids: Tuple[int, ...]
    values: Tuple[float, ...] = ()

    def __post_init__(self):
        if len(self.vertex_ids) != self.ctype.arity:
            raise ValueError(
                f"{self.ctype.name} expects {self.ctype.arity} vertices, "
                f"got {len(self.vertex_ids)}"
            )
        expected = _SHAPE[self.ctype][2]
        if len(self.values) != expected:
            raise ValueError(
                f"{self.ctype.name} expects {expected} values, got {len(self.values)}"
            )

    @property
    def equation_count(self) -> int:
        return self.ctype.equation_count


class ConstraintStore:
    """
    Owns all active constraints of a sketch, in creation order.

    The store is bound to the :class:`VertexStore` whose vertices it
    constrains; helpers that capture a constant read the current vertex
    positions from it.

    Usage::

        vertices = VertexStore()
        constraints = ConstraintStore(vertices)
        a = vertices.add(0, 0)
        b = vertices.add(3, 4)
        constraints.constrain_fixed(a)
        constraints.constrain_distance(a, b)   # captures 25.0
    """

    def __init__(self, vertices: VertexStore, ids: Optional[IdAllocator] = None):
        self._vertices = vertices
        self._constraints: Dict[int, Constraint] = {}
        self._ids = ids if ids is not None else IdAllocator()

    # -- Queries ---------------------------------------------------------------

    @property
    def vertices(self) -> VertexStore:
        return self._vertices

    def get(self, cid: int) -> Optional[Constraint]:
        return self._constraints.get(cid)

    def referencing(self, vid: int) -> List[Constraint]:
        """Constraints that name vertex *vid*."""
        return [c for c in self._constraints.values() if vid in c.vertex_ids]

    def __iter__(self) -> Iterator[Constraint]:
        return iter(list(self._constraints.values()))

    def __len__(self) -> int:
        return len(self._constraints)

    def __contains__(self, cid: int) -> bool:
        return cid in self._constraints

    # -- Mutations -------------------------------------------------------------

    def add(
        self,
        ctype: ConstraintType,
        vertex_ids: Tuple[int, ...],
        values: Tuple[float, ...] = (),
    ) -> Constraint:
        """
        Create and store a constraint with a freshly allocated id.

        Raises:
            MissingVertex: if any vertex id is not in the vertex store.
        """
        vertex_ids = tuple(vertex_ids)
        for vid in vertex_ids:
            if vid not in self._vertices:
                raise MissingVertex(vid)
        c = Constraint(
            cid=self._ids.peek(),
            ctype=ctype,
            vertex_ids=vertex_ids,
            values=tuple(float(v) for v in values),
        )
        self._ids.next_id()
        self._constraints[c.cid] = c
        return c

    def remove(self, cid: int) -> Optional[Constraint]:
        """Remove and return a constraint by id, or ``None`` if not found."""
        return self._constraints.pop(cid, None)

    def clear(self):
        self._constraints.clear()

    # -- Construction helpers --------------------------------------------------

    def _current(self, vid: int) -> Tuple[float, float]:
        if vid not in self._vertices:
            raise MissingVertex(vid)
        return self._vertices.position(vid)

    def constrain_fixed(
        self, vid: int, target: Optional[Tuple[float, float]] = None,
    ) -> Constraint:
        """Pin a vertex to *target*, by default its current position."""
        if target is None:
            target = self._current(vid)
        return self.add(ConstraintType.FIXED, (vid,), (target[0], target[1]))

    def constrain_fixed_x(self, vid: int, x: Optional[float] = None) -> Constraint:
        if x is None:
            x = self._current(vid)[0]
        return self.add(ConstraintType.FIXED_X, (vid,), (x,))

    def constrain_fixed_y(self, vid: int, y: Optional[float] = None) -> Constraint:
        if y is None:
            y = self._current(vid)[1]
        return self.add(ConstraintType.FIXED_Y, (vid,), (y,))

    def constrain_vertical(self, va: int, vb: int) -> Constraint:
        """Segment a-b is vertical (same x)."""
        return self.add(ConstraintType.VERTICAL, (va, vb))

    def constrain_horizontal(self, va: int, vb: int) -> Constraint:
        """Segment a-b is horizontal (same y)."""
        return self.add(ConstraintType.HORIZONTAL, (va, vb))

    def constrain_parallel(self, va: int, vb: int, vc: int, vd: int) -> Constraint:
        """Segment a-b is parallel to segment c-d."""
        return self.add(ConstraintType.PARALLEL, (va, vb, vc, vd))

    def constrain_same_pos(self, va: int, vb: int) -> Constraint:
        """Two vertices coincide."""
        return self.add(ConstraintType.SAME_POS, (va, vb))

    def constrain_distance(
        self, va: int, vb: int, sq_distance: Optional[float] = None,
    ) -> Constraint:
        """
        Keep the distance between a and b.

        The constraint stores the *squared* distance; by default the one
        measured between the two vertices right now.
        """
        if sq_distance is None:
            ax, ay = self._current(va)
            bx, by = self._current(vb)
            sq_distance = (bx - ax) ** 2 + (by - ay) ** 2
        return self.add(ConstraintType.DISTANCE, (va, vb), (sq_distance,))

    def __repr__(self) -> str:
        return f"ConstraintStore(constraints={len(self._constraints)})"
