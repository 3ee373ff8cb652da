"""
SketchBind Programmatic API — headless facade over the constraint kernel.

This module provides a ``SketchBindAPI`` class that owns a
:class:`VertexStore` and a :class:`ConstraintStore` and wraps the solver in a
single, UI-free interface.  Use it for:

- **Unit / integration tests** — drive edits and assert on vertex positions
  without any canvas or event wiring.
- **Scripting / automation** — build constrained sketches from Python code.
- **The interaction layer** — every drag or constraint edit calls
  :meth:`SketchBindAPI.solve_constraints` or :meth:`SketchBindAPI.drag_vertex`
  and declines the edit when they return ``False``.

Example::

    from sketchbind.api import SketchBindAPI

    api = SketchBindAPI()
    a = api.add_vertex(0, 0)
    b = api.add_vertex(5, 3)
    api.fix(a)
    api.horizontal(a, b)
    assert api.solve_constraints()
    x, y = api.get_point(b)     # y is ~0.0, x stays 5.0
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from .core.logger import logger, set_debug
from .core.settings import SolverSettings
from .kernel.constraint_solver import SolveObserver, SolveReport, solve
from .kernel.constraints import Constraint, ConstraintStore
from .kernel.errors import MissingVertex, SolveError
from .kernel.residuals import ResidualModel
from .kernel.variable_index import VariableIndex
from .kernel.vertices import VertexStore


class SketchBindAPI:
    """
    Headless programmatic API for a single constrained sketch.

    Parameters:
        settings: Solver settings used by every solve.  Defaults to
            :class:`SolverSettings` defaults.
    """

    def __init__(self, settings: Optional[SolverSettings] = None):
        self._settings = settings or SolverSettings()
        self._vertices = VertexStore()
        self._constraints = ConstraintStore(self._vertices)
        self.last_report: Optional[SolveReport] = None
        self.last_error: Optional[SolveError] = None
        if self._settings.debug:
            set_debug(True)

    # =====================================================================
    # Vertices
    # =====================================================================

    def add_vertex(self, x: float, y: float) -> int:
        """Create a vertex and return its id."""
        return self._vertices.add(x, y)

    def move_vertex(self, vid: int, x: float, y: float):
        """Move a vertex by hand, without solving."""
        self._vertices.set_position(vid, x, y)

    def remove_vertex(self, vid: int, cascade: bool = True) -> bool:
        """
        Delete a vertex.

        Args:
            vid: Vertex id.
            cascade: Also delete every constraint that references it.  With
                ``False`` those constraints stay and the next solve fails
                with ``MissingVertex``.

        Returns:
            ``True`` if the vertex existed.
        """
        if cascade:
            for c in self._constraints.referencing(vid):
                self._constraints.remove(c.cid)
        return self._vertices.remove(vid) is not None

    def get_point(self, vid: int) -> Tuple[float, float]:
        """Get the current (x, y) of a vertex."""
        return self._vertices.position(vid)

    # =====================================================================
    # Constraints
    # =====================================================================

    def fix(self, vid: int, target: Optional[Tuple[float, float]] = None) -> int:
        """Pin a vertex (to its current position unless *target* is given)."""
        return self._constraints.constrain_fixed(vid, target).cid

    def fix_x(self, vid: int, x: Optional[float] = None) -> int:
        return self._constraints.constrain_fixed_x(vid, x).cid

    def fix_y(self, vid: int, y: Optional[float] = None) -> int:
        return self._constraints.constrain_fixed_y(vid, y).cid

    def vertical(self, va: int, vb: int) -> int:
        return self._constraints.constrain_vertical(va, vb).cid

    def horizontal(self, va: int, vb: int) -> int:
        return self._constraints.constrain_horizontal(va, vb).cid

    def parallel(self, va: int, vb: int, vc: int, vd: int) -> int:
        return self._constraints.constrain_parallel(va, vb, vc, vd).cid

    def same_pos(self, va: int, vb: int) -> int:
        return self._constraints.constrain_same_pos(va, vb).cid

    def distance(self, va: int, vb: int, sq_distance: Optional[float] = None) -> int:
        """Keep the (squared) distance between two vertices."""
        return self._constraints.constrain_distance(va, vb, sq_distance).cid

    def remove_constraint(self, cid: int) -> bool:
        return self._constraints.remove(cid) is not None

    def clear_constraints(self):
        self._constraints.clear()

    # =====================================================================
    # Solving
    # =====================================================================

    def solve_constraints(self, observer: Optional[SolveObserver] = None) -> bool:
        """
        Solve all constraints and update vertex positions.

        Returns ``True`` on success.  On failure the vertex store is left
        unchanged, the error is logged and kept in :attr:`last_error`.
        """
        self.last_error = None
        try:
            self.last_report = solve(
                self._constraints, self._vertices, self._settings, observer,
            )
        except SolveError as exc:
            logger.warning(f"Error resolving constraints: {exc}")
            self.last_error = exc
            self.last_report = None
            return False
        return True

    def drag_vertex(self, vid: int, target_x: float, target_y: float) -> bool:
        """
        Drag a vertex to a new position and re-solve.

        The target is used as the solver's starting point for the dragged
        vertex; it adds no constraint.  If the solve fails every vertex goes
        back to where it was before the drag.
        """
        if vid not in self._vertices:
            self.last_error = MissingVertex(vid)
            logger.warning(f"Cannot drag: {self.last_error}")
            return False
        before = self._vertices.snapshot()
        self._vertices.set_position(vid, target_x, target_y)
        ok = self.solve_constraints()
        if not ok:
            self._vertices.restore(before)
        return ok

    # =====================================================================
    # Diagnostics
    # =====================================================================

    def _model(self) -> Tuple[ResidualModel, VariableIndex]:
        constraints = list(self._constraints)
        index = VariableIndex.build(constraints, self._vertices)
        model = ResidualModel(
            constraints,
            index,
            distance_mode=self._settings.distance_mode,
            degenerate_policy=self._settings.degenerate_policy,
        )
        return model, index

    def constraint_errors(self) -> List[Tuple[int, float]]:
        """Return (cid, error) for each constraint (sum of squared residuals)."""
        model, index = self._model()
        return model.constraint_errors(index.x0)

    @property
    def dof(self) -> int:
        """
        Free coordinates of the whole sketch minus constraint equations.

        Every vertex counts, including ones no constraint mentions.
        Negative when over-constrained.
        """
        model, _ = self._model()
        return 2 * len(self._vertices) - model.size

    def is_fully_constrained(self) -> bool:
        """True if DOF == 0 and all constraints are satisfied."""
        if self.dof > 0:
            return False
        model, index = self._model()
        return model.norm(index.x0) <= self._settings.tolerance

    # =====================================================================
    # State queries
    # =====================================================================

    @property
    def vertices(self) -> VertexStore:
        return self._vertices

    @property
    def constraints(self) -> List[Constraint]:
        return list(self._constraints)

    @property
    def constraint_store(self) -> ConstraintStore:
        return self._constraints

    @property
    def settings(self) -> SolverSettings:
        return self._settings

    def __repr__(self) -> str:
        return (
            f"SketchBindAPI(vertices={len(self._vertices)}, "
            f"constraints={len(self._constraints)})"
        )
