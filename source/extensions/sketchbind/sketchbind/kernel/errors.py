"""
Solve outcomes other than success.

All three are recoverable: the caller is expected to decline the edit that
triggered the solve and leave the vertex store as it was.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np


class SolveError(Exception):
    """Base class for every failed solve."""


class MissingVertex(SolveError):
    """A constraint references a vertex id that is not in the vertex store."""

    def __init__(self, vertex_id: int, constraint_id: Optional[int] = None):
        self.vertex_id = vertex_id
        self.constraint_id = constraint_id
        if constraint_id is None:
            msg = f"vertex {vertex_id} does not exist"
        else:
            msg = f"constraint {constraint_id} references missing vertex {vertex_id}"
        super().__init__(msg)


class DegenerateConstraint(SolveError):
    """A constraint whose residual is undefined for the current geometry."""

    def __init__(self, constraint_id: int, reason: str):
        self.constraint_id = constraint_id
        self.reason = reason
        super().__init__(f"constraint {constraint_id} is degenerate: {reason}")


class DidNotConverge(SolveError):
    """
    The iteration cap was reached before the residual norm fell under the
    tolerance.

    Attributes:
        norm: Residual norm of the best vector found.
        iterations: Number of residual evaluations performed.
        best: The best flat vector found (never committed).
        worst: ``(cid, error)`` pairs of the worst offending constraints,
            largest error first.
    """

    def __init__(
        self,
        norm: float,
        iterations: int,
        best: np.ndarray,
        worst: Optional[List[Tuple[int, float]]] = None,
    ):
        self.norm = norm
        self.iterations = iterations
        self.best = best
        self.worst = worst or []
        super().__init__(
            f"no solution after {iterations} iterations (residual norm {norm:.3e})"
        )
