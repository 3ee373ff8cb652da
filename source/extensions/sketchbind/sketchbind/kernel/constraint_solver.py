"""
2D Geometric Constraint Solver — scipy-based.

Architecture
------------
* :class:`VariableIndex` maps every constrained vertex onto two slots of a
  flat parameter vector ``params[]``, seeded from the vertex store.
* :class:`ResidualModel` turns each constraint into one or more scalar
  residuals (zero means satisfied) and supplies their analytic Jacobian.
* :class:`ConstraintSolver` minimises the sum of squared residuals with
  ``scipy.optimize.least_squares`` (Trust Region Reflective), which accepts
  over- and under-determined systems alike.
* :func:`commit` writes the solved vector back to the vertex store; it only
  runs when the residual norm reached the tolerance.

:func:`solve` chains the four steps and is the only entry point the rest of
the application needs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

import numpy as np
from scipy.optimize import least_squares

from ..core.logger import logger
from ..core.settings import SolverSettings
from .constraints import Constraint
from .errors import DidNotConverge
from .residuals import ResidualModel
from .variable_index import VariableIndex
from .vertices import VertexStore


# Called as observer(iteration, norm, vector); advisory only
SolveObserver = Callable[[int, float, np.ndarray], None]


@dataclass
class SolverResult:
    """Raw outcome of :meth:`ConstraintSolver.run`."""
    x: np.ndarray
    norm: float
    iterations: int
    converged: bool


@dataclass
class SolveReport:
    """Summary of a successful :func:`solve`."""
    iterations: int
    norm: float
    # Vertex ids written back to the store (empty when nothing had to move)
    moved: List[int] = field(default_factory=list)
    # Constraint ids left out as degenerate
    skipped: List[int] = field(default_factory=list)


# =========================================================================
# Solver
# =========================================================================

class ConstraintSolver:
    """
    Iterative least-squares driver.

    Usage::

        solver = ConstraintSolver(SolverSettings(tolerance=1e-6))
        result = solver.run(model, index.x0)
        if result.converged:
            commit(index, result.x, vertices)
    """

    def __init__(self, settings: Optional[SolverSettings] = None):
        self.settings = settings or SolverSettings()

    def run(
        self,
        model: ResidualModel,
        x0: np.ndarray,
        observer: Optional[SolveObserver] = None,
    ) -> SolverResult:
        """
        Search for a vector whose residual norm is at most the tolerance.

        Every residual evaluation after the seed counts as one iteration; at
        most ``settings.max_iterations`` are performed.  The best vector seen
        is returned whether or not it converged.
        """
        tol = self.settings.tolerance
        x0 = np.asarray(x0, dtype=np.float64)

        norm0 = model.norm(x0)
        # Skip the solver entirely when already converged
        if norm0 <= tol:
            return SolverResult(x=x0.copy(), norm=norm0, iterations=0, converged=True)

        best = {"x": x0.copy(), "norm": norm0}
        evals = [0]

        def fun(x: np.ndarray) -> np.ndarray:
            r = model.residuals(x)
            evals[0] += 1
            norm = float(np.linalg.norm(r))
            if norm < best["norm"]:
                best["x"] = x.copy()
                best["norm"] = norm
            # least_squares evaluates its starting point first; not an iteration
            if evals[0] == 1:
                return r
            iteration = evals[0] - 1
            logger.debug(f"iteration {iteration}: residual norm {norm:.3e}")
            if observer is not None:
                observer(iteration, norm, x.copy())
            return r

        step_tol = self.settings.step_tolerance
        result = least_squares(
            fun,
            model.separate_coincident(x0),
            jac=lambda x: model.jacobian(x),
            method="trf",
            max_nfev=self.settings.max_iterations + 1,
            ftol=step_tol,
            xtol=step_tol,
            gtol=step_tol,
        )

        x = np.asarray(result.x, dtype=np.float64)
        norm = float(np.linalg.norm(result.fun))
        if best["norm"] < norm:
            x, norm = best["x"], best["norm"]

        iterations = max(evals[0] - 1, 0)
        return SolverResult(x=x, norm=norm, iterations=iterations, converged=norm <= tol)


# =========================================================================
# Result commit
# =========================================================================

def commit(index: VariableIndex, vector: np.ndarray, vertices: VertexStore) -> List[int]:
    """
    Write each indexed vertex's solved position back into *vertices*.

    All values are read and checked before the first write, so the store is
    either fully updated or left as it was.  Returns the ids written.
    """
    vector = np.asarray(vector, dtype=np.float64)
    if vector.shape != (index.size,):
        raise ValueError(f"expected a vector of size {index.size}, got shape {vector.shape}")
    if not np.all(np.isfinite(vector)):
        raise ValueError("refusing to commit a non-finite solution")

    writes = [(vid, index.point(vector, vid)) for vid in index.vertex_ids]
    for vid, (x, y) in writes:
        vertices.set_position(vid, x, y)
    return [vid for vid, _ in writes]


# =========================================================================
# Entry point
# =========================================================================

def solve(
    constraints: Iterable[Constraint],
    vertices: VertexStore,
    settings: Optional[SolverSettings] = None,
    observer: Optional[SolveObserver] = None,
) -> SolveReport:
    """
    Solve the constraint system and update vertex positions in place.

    Args:
        constraints: The active constraints (e.g. a ``ConstraintStore``).
        vertices: The vertex store to read seeds from and commit into.
        settings: Tolerance, iteration cap and residual policies.
        observer: Optional ``(iteration, norm, vector)`` callback.

    Returns:
        A :class:`SolveReport`.

    Raises:
        MissingVertex: a constraint names a vertex not in *vertices*.
        DegenerateConstraint: a constraint cannot be evaluated.
        DidNotConverge: the tolerance was not reached.

    *vertices* is only modified when the call returns normally.
    """
    settings = settings or SolverSettings()
    constraint_list = list(constraints)

    index = VariableIndex.build(constraint_list, vertices)
    model = ResidualModel(
        constraint_list,
        index,
        distance_mode=settings.distance_mode,
        degenerate_policy=settings.degenerate_policy,
    )

    if model.size == 0:
        return SolveReport(iterations=0, norm=0.0, skipped=model.skipped)

    result = ConstraintSolver(settings).run(model, index.x0, observer)

    if not result.converged:
        raise DidNotConverge(
            norm=result.norm,
            iterations=result.iterations,
            best=result.x,
            worst=model.worst_constraints(result.x),
        )

    moved: List[int] = []
    if not np.array_equal(result.x, index.x0):
        moved = commit(index, result.x, vertices)

    logger.info(
        f"Solved {len(constraint_list)} constraints over {len(index)} vertices "
        f"in {result.iterations} iterations (residual norm {result.norm:.3e})"
    )
    return SolveReport(
        iterations=result.iterations,
        norm=result.norm,
        moved=moved,
        skipped=model.skipped,
    )
