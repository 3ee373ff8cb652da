"""
Residual model — turns the constraint set into one vector-valued function.

Each constraint contributes one or more scalar residual components (zero
when satisfied): FIXED and SAME_POS contribute two, every other type one.
The row layout is fixed when the model is built, so every evaluation during
a solve returns the residuals in the same order.

The model also provides the analytic Jacobian that ``least_squares`` uses
instead of finite differences.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from ..core.logger import logger
from ..core.settings import DegeneratePolicy, DistanceMode
from .constraints import Constraint, ConstraintType
from .errors import DegenerateConstraint
from .variable_index import VariableIndex

# Fraction of the target distance used to split coincident DISTANCE operands
_SEPARATION = 1e-3


@dataclass(frozen=True)
class _Row:
    """Where one constraint lives inside the residual vector."""
    constraint: Constraint
    start: int
    # Flat slots of the referenced vertices: (x0, y0, x1, y1, ...)
    slots: Tuple[int, ...]


def degeneracy_reason(c: Constraint) -> str:
    """
    Structural reason why *c* cannot be evaluated meaningfully, or ``""``.

    A relation between a vertex and itself is either trivially satisfied
    or impossible; neither gives the solver a usable equation.
    """
    ids = c.vertex_ids
    if c.ctype in (
        ConstraintType.VERTICAL,
        ConstraintType.HORIZONTAL,
        ConstraintType.SAME_POS,
        ConstraintType.DISTANCE,
    ):
        if ids[0] == ids[1]:
            return f"{c.ctype.name} between vertex {ids[0]} and itself"
    elif c.ctype == ConstraintType.PARALLEL:
        if ids[0] == ids[1]:
            return f"first segment collapses onto vertex {ids[0]}"
        if ids[2] == ids[3]:
            return f"second segment collapses onto vertex {ids[2]}"
    return ""


class ResidualModel:
    """
    Pure function from the flat variable vector to the residual vector.

    Parameters:
        constraints: Constraints in the order their rows are laid out.
        index: The :class:`VariableIndex` of the current solve.
        distance_mode: Signed (default) or legacy absolute DISTANCE residual.
        degenerate_policy: Raise on structurally degenerate constraints,
            or leave them out of the system.
    """

    def __init__(
        self,
        constraints: Sequence[Constraint],
        index: VariableIndex,
        distance_mode: DistanceMode = DistanceMode.SIGNED,
        degenerate_policy: DegeneratePolicy = DegeneratePolicy.RAISE,
    ):
        self._index = index
        self._distance_mode = distance_mode
        self._rows: List[_Row] = []
        self._skipped: List[int] = []

        start = 0
        for c in constraints:
            reason = degeneracy_reason(c)
            if reason:
                if degenerate_policy == DegeneratePolicy.RAISE:
                    raise DegenerateConstraint(c.cid, reason)
                logger.warning(f"Skipping degenerate constraint {c.cid}: {reason}")
                self._skipped.append(c.cid)
                continue
            slots: List[int] = []
            for vid in c.vertex_ids:
                slots.extend(index.slots(vid))
            self._rows.append(_Row(c, start, tuple(slots)))
            start += c.equation_count
        self._m = start

    # -- Layout ----------------------------------------------------------------

    @property
    def size(self) -> int:
        """Number of scalar residuals."""
        return self._m

    @property
    def variable_count(self) -> int:
        return self._index.size

    @property
    def skipped(self) -> List[int]:
        """Ids of constraints left out as degenerate."""
        return list(self._skipped)

    @property
    def degrees_of_freedom(self) -> int:
        """Indexed coordinates minus equations; negative when over-constrained."""
        return self._index.size - self._m

    # -- Evaluation ------------------------------------------------------------

    def __call__(self, p: np.ndarray) -> np.ndarray:
        return self.residuals(p)

    def residuals(self, p: np.ndarray) -> np.ndarray:
        """
        Build the full residual vector for ``least_squares``.

        Raises:
            DegenerateConstraint: if any component is not finite.
        """
        r = np.empty(self._m, dtype=np.float64)
        for row in self._rows:
            vals = self._eval_residuals(row, p)
            r[row.start:row.start + len(vals)] = vals
        if not np.all(np.isfinite(r)):
            self._raise_non_finite(r)
        return r

    def _eval_residuals(self, row: _Row, p: np.ndarray) -> List[float]:
        c = row.constraint
        s = row.slots
        t = c.ctype

        if t == ConstraintType.FIXED:
            return [p[s[0]] - c.values[0], p[s[1]] - c.values[1]]

        if t == ConstraintType.FIXED_X:
            return [p[s[0]] - c.values[0]]

        if t == ConstraintType.FIXED_Y:
            return [p[s[1]] - c.values[0]]

        if t == ConstraintType.VERTICAL:
            return [p[s[0]] - p[s[2]]]

        if t == ConstraintType.HORIZONTAL:
            return [p[s[1]] - p[s[3]]]

        if t == ConstraintType.PARALLEL:
            ab_x = p[s[2]] - p[s[0]]
            ab_y = p[s[3]] - p[s[1]]
            cd_x = p[s[6]] - p[s[4]]
            cd_y = p[s[7]] - p[s[5]]
            return [cd_x * ab_y - cd_y * ab_x]

        if t == ConstraintType.SAME_POS:
            return [p[s[0]] - p[s[2]], p[s[1]] - p[s[3]]]

        if t == ConstraintType.DISTANCE:
            dx = p[s[2]] - p[s[0]]
            dy = p[s[3]] - p[s[1]]
            err = dx * dx + dy * dy - c.values[0]
            if self._distance_mode == DistanceMode.ABSOLUTE:
                return [abs(err)]
            return [err]

        raise ValueError(f"Unknown constraint type: {t}")

    def jacobian(self, p: np.ndarray) -> np.ndarray:
        """Dense ``size x variable_count`` matrix of partial derivatives."""
        J = np.zeros((self._m, self._index.size), dtype=np.float64)
        for row in self._rows:
            for r, col, val in self._eval_partials(row, p):
                # += so a vertex used twice in one constraint sums correctly
                J[row.start + r, col] += val
        return J

    def _eval_partials(self, row: _Row, p: np.ndarray) -> List[Tuple[int, int, float]]:
        """``(row offset, column, value)`` triples for one constraint."""
        c = row.constraint
        s = row.slots
        t = c.ctype

        if t == ConstraintType.FIXED:
            return [(0, s[0], 1.0), (1, s[1], 1.0)]

        if t == ConstraintType.FIXED_X:
            return [(0, s[0], 1.0)]

        if t == ConstraintType.FIXED_Y:
            return [(0, s[1], 1.0)]

        if t == ConstraintType.VERTICAL:
            return [(0, s[0], 1.0), (0, s[2], -1.0)]

        if t == ConstraintType.HORIZONTAL:
            return [(0, s[1], 1.0), (0, s[3], -1.0)]

        if t == ConstraintType.PARALLEL:
            ab_x = p[s[2]] - p[s[0]]
            ab_y = p[s[3]] - p[s[1]]
            cd_x = p[s[6]] - p[s[4]]
            cd_y = p[s[7]] - p[s[5]]
            return [
                (0, s[0], cd_y), (0, s[1], -cd_x),
                (0, s[2], -cd_y), (0, s[3], cd_x),
                (0, s[4], -ab_y), (0, s[5], ab_x),
                (0, s[6], ab_y), (0, s[7], -ab_x),
            ]

        if t == ConstraintType.SAME_POS:
            return [
                (0, s[0], 1.0), (0, s[2], -1.0),
                (1, s[1], 1.0), (1, s[3], -1.0),
            ]

        if t == ConstraintType.DISTANCE:
            dx = p[s[2]] - p[s[0]]
            dy = p[s[3]] - p[s[1]]
            sign = 1.0
            if self._distance_mode == DistanceMode.ABSOLUTE:
                sign = float(np.sign(dx * dx + dy * dy - c.values[0]))
            return [
                (0, s[0], -2.0 * dx * sign), (0, s[1], -2.0 * dy * sign),
                (0, s[2], 2.0 * dx * sign), (0, s[3], 2.0 * dy * sign),
            ]

        raise ValueError(f"Unknown constraint type: {t}")

    def separate_coincident(self, p: np.ndarray) -> np.ndarray:
        """
        Copy of *p* with coincident DISTANCE operands pulled apart.

        The DISTANCE gradient vanishes when both vertices sit on the same
        point, so the solver could not move them.  The second vertex is
        shifted along +x by a small fraction of the target distance.
        """
        q = np.array(p, dtype=np.float64)
        for row in self._rows:
            c = row.constraint
            if c.ctype != ConstraintType.DISTANCE or c.values[0] <= 0.0:
                continue
            s = row.slots
            if q[s[0]] == q[s[2]] and q[s[1]] == q[s[3]]:
                q[s[2]] += _SEPARATION * math.sqrt(c.values[0])
        return q

    def _raise_non_finite(self, r: np.ndarray):
        for row in self._rows:
            chunk = r[row.start:row.start + row.constraint.equation_count]
            if not np.all(np.isfinite(chunk)):
                raise DegenerateConstraint(
                    row.constraint.cid, "residual is not finite",
                )

    # -- Diagnostics -----------------------------------------------------------

    def norm(self, p: np.ndarray) -> float:
        """Euclidean norm of the residual vector."""
        if self._m == 0:
            return 0.0
        return float(np.linalg.norm(self.residuals(p)))

    def constraint_errors(self, p: np.ndarray) -> List[Tuple[int, float]]:
        """Return ``(cid, error)`` per constraint (sum of squared residuals)."""
        result = []
        for row in self._rows:
            err = sum(v * v for v in self._eval_residuals(row, p))
            result.append((row.constraint.cid, float(err)))
        return result

    def worst_constraints(self, p: np.ndarray, limit: int = 5) -> List[Tuple[int, float]]:
        errors = [e for e in self.constraint_errors(p) if math.isfinite(e[1])]
        errors.sort(key=lambda e: e[1], reverse=True)
        return [e for e in errors[:limit] if e[1] > 0.0]

    def __repr__(self) -> str:
        return (
            f"ResidualModel(residuals={self._m}, variables={self._index.size}, "
            f"dof={self.degrees_of_freedom})"
        )
